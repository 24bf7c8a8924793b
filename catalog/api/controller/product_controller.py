"""REST controller for product CRUD and search."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status

from catalog.services import ProductService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


def get_product_service(request: Request) -> ProductService:
    """Return the service opened by the application lifespan."""
    return request.app.state.product_service


def _filters(
    name: Optional[str],
    price: Optional[float],
    description: Optional[str],
    category: Optional[str],
) -> dict[str, Any]:
    candidates = {"name": name, "price": price, "description": description, "category": category}
    return {field: value for field, value in candidates.items() if value is not None}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: dict[str, Any] = Body(...),
    service: ProductService = Depends(get_product_service),
) -> dict[str, Any]:
    """Create a product. Invalid fields are reported per field with 422."""
    product = await service.create_product(payload)
    return product.to_document()


@router.get("")
async def list_products(
    name: Optional[str] = Query(None, description="Exact name"),
    price: Optional[float] = Query(None, description="Exact price"),
    description: Optional[str] = Query(None, description="Exact description"),
    category: Optional[str] = Query(None, description="Exact category"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: ProductService = Depends(get_product_service),
) -> list[dict[str, Any]]:
    products = await service.find_products(
        limit=limit, **_filters(name, price, description, category)
    )
    return [product.to_document() for product in products]


@router.get("/search")
async def search_products(
    q: str = Query(..., description="Words to look for in name and description"),
    sort: Optional[str] = Query(None, pattern="^score$", description="'score' ranks by relevance"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: ProductService = Depends(get_product_service),
) -> list[dict[str, Any]]:
    hits = await service.search_products(q, sort_by_score=sort == "score", limit=limit)
    return [{"product": hit.product.to_document(), "score": hit.score} for hit in hits]


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
) -> dict[str, Any]:
    product = await service.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product {product_id} not found")
    return product.to_document()


@router.patch("/{product_id}")
async def update_product(
    product_id: str,
    payload: dict[str, Any] = Body(...),
    validate: bool = Query(False, description="Validate the whole record before writing"),
    service: ProductService = Depends(get_product_service),
) -> dict[str, Any]:
    product = await service.update_product(product_id, payload, validate=validate)
    return product.to_document()


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
) -> Response:
    if not await service.delete_product(product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Product {product_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("")
async def delete_products(
    name: Optional[str] = Query(None),
    price: Optional[float] = Query(None),
    description: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    service: ProductService = Depends(get_product_service),
) -> dict[str, int]:
    """Delete matching products; without filters every product is removed."""
    deleted = await service.delete_many(**_filters(name, price, description, category))
    return {"deleted": deleted}
