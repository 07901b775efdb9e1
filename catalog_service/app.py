"""
CatalogService: HTTP API over products and stock.

Stock changes caused by orders arrive through the CatalogEvents consumer
(catalog_service.consumer), not through this API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query

from catalog_service import storage
from catalog_service.config import DB_PATH, SERVICE_NAME
from common import NotFoundError, ValidationError, setup_logging
from common.api import health, install_error_handlers
from common.models import Product, ProductCreateRequest, ProductUpdateRequest, StockRequest

setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    storage.init_catalog_db(app.state.db_path)
    yield


def create_app(db_path: str = DB_PATH) -> FastAPI:
    app = FastAPI(title="Catalog Service", lifespan=lifespan)
    app.state.db_path = db_path
    install_error_handlers(app)

    @app.post("/products", status_code=201)
    def create_product(payload: ProductCreateRequest) -> Product:
        product = storage.create_product(
            db_path,
            name=payload.name,
            description=payload.description,
            price=payload.price,
            stock=payload.stock,
            variant=payload.variant,
        )
        logger.info("Product %s created", product.id)
        return product

    @app.get("/products")
    def get_products(limit: int = Query(10, ge=1, le=100), offset: int = Query(0, ge=0)) -> list[Product]:
        return storage.find_products(db_path, limit=limit, offset=offset)

    @app.get("/products/{product_id}")
    def get_product(product_id: int) -> Product:
        product = storage.find_product(db_path, product_id)
        if product is None:
            raise NotFoundError("product not found")
        return product

    @app.patch("/products/{product_id}")
    def update_product(product_id: int, payload: ProductUpdateRequest) -> Product:
        product = storage.find_product(db_path, product_id)
        if product is None:
            raise NotFoundError("product not found")
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("no fields to update")
        if "price" in changes:
            changes["price"] = str(changes["price"])
        return storage.update_product(db_path, product.model_copy(update=changes))

    @app.delete("/products/{product_id}")
    def delete_product(product_id: int) -> dict:
        if not storage.delete_product(db_path, product_id):
            raise NotFoundError("product not found")
        return {"id": product_id, "deleted": True}

    @app.post("/products/stock")
    def get_stock(payload: StockRequest) -> list[Product]:
        return storage.find_stock(db_path, payload.ids)

    @app.get("/health")
    def health_check() -> dict:
        return health(SERVICE_NAME)

    return app


app = create_app()
