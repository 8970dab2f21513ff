# studio_tracker/ids.py
import logging

from .store import COUNTERS, DocumentStore, Transaction

logger = logging.getLogger(__name__)

COUNTER_ID = "jobCounter"


class IdAllocator:
    """
    Mints ``SC-0001``, ``SC-0002``, ... from the shared counter document.

    The read-increment-write always runs inside ``store.atomic`` so two staff
    members creating jobs at the same moment can never get the same number.
    A missing counter counts as 0. Numbers are never handed out twice, even
    after the job that used one is deleted.
    """

    def __init__(self, store: DocumentStore, prefix: str = "SC", width: int = 4):
        self.store = store
        self.prefix = prefix
        self.width = width

    def format(self, number: int) -> str:
        return f"{self.prefix}-{number:0{self.width}d}"

    async def allocate(self) -> str:
        return await self.store.atomic(self.allocate_in)

    async def allocate_in(self, tx: Transaction) -> str:
        """Allocate inside a transaction the caller already holds."""
        counter = await tx.get(COUNTERS, COUNTER_ID) or {}
        try:
            current = int(counter.get("current") or 0)
        except (TypeError, ValueError):
            logger.error(f"Counter {COUNTER_ID} holds {counter.get('current')!r}; refusing to guess")
            raise
        nxt = current + 1
        tx.set(COUNTERS, COUNTER_ID, {"current": nxt})
        return self.format(nxt)
