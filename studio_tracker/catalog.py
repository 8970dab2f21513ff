# studio_tracker/catalog.py
import logging
import uuid
from typing import Any, List, Mapping, Optional, Union

from .errors import NotFoundError, ValidationError
from .models import Actor, Product, ProductIn, parse_input
from .permissions import authorize
from .records import normalize_product
from .store import PRODUCTS, DocumentStore

logger = logging.getLogger(__name__)


class ProductCatalog:
    """Priced services the dashboard prefills jobs from."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def list(self) -> List[Product]:
        docs = await self.store.list(PRODUCTS)
        products = [normalize_product(doc_id, record) for doc_id, record in docs.items()]
        return sorted(products, key=lambda p: p.code.lower())

    async def get(self, product_id: str) -> Optional[Product]:
        record = await self.store.get(PRODUCTS, product_id)
        return None if record is None else normalize_product(product_id, record)

    async def add(self, data: Union[ProductIn, Mapping[str, Any]], actor: Optional[Actor]) -> Product:
        authorize(actor, "catalog.add")
        payload = parse_input(ProductIn, data)
        wanted = payload.code.lower()
        if any(p.code.lower() == wanted for p in await self.list()):
            raise ValidationError(f"Product code {payload.code} already exists")

        product = Product(id=uuid.uuid4().hex, **payload.model_dump())
        await self.store.put(PRODUCTS, product.id, product.to_record())
        logger.info(f"Product {product.code} added by {actor.id}")
        return product

    async def delete(self, product_id: str, actor: Optional[Actor]) -> None:
        authorize(actor, "catalog.delete")
        if not await self.store.delete(PRODUCTS, product_id):
            raise NotFoundError(f"Product {product_id} not found")
        logger.info(f"Product {product_id} deleted by {actor.id}")
