from datetime import datetime, timedelta, timezone

import pytest

from studio_tracker.catalog import ProductCatalog
from studio_tracker.errors import NotificationFailure
from studio_tracker.ids import IdAllocator
from studio_tracker.lifecycle import JobLedger
from studio_tracker.models import Actor, Role
from studio_tracker.notify import NotificationDispatcher
from studio_tracker.store import MemoryDocumentStore


class RecordingMailer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []
        self.attempts = 0

    async def send(self, request) -> None:
        self.attempts += 1
        if self.fail:
            raise NotificationFailure("smtp down", job_id=request.job_id)
        self.sent.append(request)


class StubRenderer:
    def __init__(self) -> None:
        self.rendered = []

    def render(self, job) -> bytes:
        self.rendered.append(job.id)
        return b"%PDF-1.4 receipt " + job.id.encode()


class TickingClock:
    """Each call is one minute after the last, so creation order is visible."""

    def __init__(self) -> None:
        self.now = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture()
def admin():
    return Actor(id="u-admin", email="owner@studioclick.lk", role=Role.ADMIN)


@pytest.fixture()
def staff():
    return Actor(id="u-staff", email="desk@studioclick.lk", role=Role.STAFF)


@pytest.fixture()
def store():
    return MemoryDocumentStore(max_attempts=50)


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture()
def renderer():
    return StubRenderer()


@pytest.fixture()
def clock():
    return TickingClock()


@pytest.fixture()
def make_ledger(store, renderer, clock):
    def _make(mailer, **kwargs):
        return JobLedger(
            store,
            IdAllocator(store),
            ProductCatalog(store),
            NotificationDispatcher(mailer, renderer),
            clock=clock,
            **kwargs,
        )

    return _make


@pytest.fixture()
def ledger(make_ledger, mailer):
    return make_ledger(mailer)


@pytest.fixture()
def failing_mailer():
    return RecordingMailer(fail=True)
