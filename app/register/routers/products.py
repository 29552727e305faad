from fastapi import APIRouter, Depends

from app.register.core.error_catalog import ErrorCatalog, NotFoundError
from app.register.db.session import get_db
from app.register.repos.products import ProductRepository
from app.register.schemas.catalog import ProductListResponse, ProductResponse, ProductUpsertRequest
from app.register.services.totals import to_money

router = APIRouter()


def _product_response(product) -> ProductResponse:
    return ProductResponse(name=product.name, price=to_money(product.price))


@router.get("/register/products", response_model=ProductListResponse)
def list_products(db=Depends(get_db)):
    return ProductListResponse(rows=[_product_response(product) for product in ProductRepository(db).list_all()])


@router.post("/register/products", response_model=ProductResponse, status_code=201)
def create_product(payload: ProductUpsertRequest, db=Depends(get_db)):
    product = ProductRepository(db).put(payload.name, to_money(payload.price))
    return _product_response(product)


@router.put("/register/products/{name}", response_model=ProductResponse)
def update_product(name: str, payload: ProductUpsertRequest, db=Depends(get_db)):
    product = ProductRepository(db).rename(name, payload.name, to_money(payload.price))
    return _product_response(product)


@router.delete("/register/products/{name}", status_code=204)
def delete_product(name: str, db=Depends(get_db)):
    if not ProductRepository(db).delete(name):
        raise NotFoundError(ErrorCatalog.PRODUCT_NOT_FOUND, details={"name": name})
