# studio_tracker/products.py
from typing import List

from fastapi import APIRouter, Depends

from .catalog import ProductCatalog
from .deps import get_actor, get_catalog
from .models import Actor, Product, ProductIn

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[Product])
async def list_products(actor: Actor = Depends(get_actor), catalog: ProductCatalog = Depends(get_catalog)):
    return await catalog.list()


@router.post("", response_model=Product, status_code=201)
async def add_product(
    payload: ProductIn,
    actor: Actor = Depends(get_actor),
    catalog: ProductCatalog = Depends(get_catalog),
):
    return await catalog.add(payload, actor)


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    actor: Actor = Depends(get_actor),
    catalog: ProductCatalog = Depends(get_catalog),
):
    await catalog.delete(product_id, actor)
    return {"ok": True, "id": product_id}
