"""FastAPI application setup."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from catalog.api.controller import product_router
from catalog.exceptions import InvalidFilterError, ProductNotFoundError, ProductValidationError, StoreError
from catalog.services import ProductService

logger = logging.getLogger(__name__)


def create_app(
    product_service: Optional[ProductService] = None,
    title: str = "Product Catalog API",
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        product_service: Service to serve requests with. When omitted, one is
            built from configuration at startup.
        title: OpenAPI title.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        service = product_service or ProductService()
        await service.connect()
        app.state.product_service = service
        try:
            yield
        finally:
            await service.close()

    app = FastAPI(
        title=title,
        description="CRUD and full-text search for products",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(ProductValidationError)
    async def handle_validation_error(request: Request, exc: ProductValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"errors": exc.errors},
        )

    @app.exception_handler(ProductNotFoundError)
    async def handle_not_found(request: Request, exc: ProductNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Product store unavailable"},
        )

    @app.exception_handler(InvalidFilterError)
    async def handle_bad_filter(request: Request, exc: InvalidFilterError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    # Include routers
    app.include_router(product_router)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
