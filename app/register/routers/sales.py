from fastapi import APIRouter, Depends, Query

from app.register.core.config import settings
from app.register.core.error_catalog import ErrorCatalog, NotFoundError
from app.register.db.changes import change_feed
from app.register.db.session import get_db
from app.register.repos.sales import SaleRepository
from app.register.schemas.catalog import (
    ChangeVersionsResponse,
    SaleLineResponse,
    SaleListResponse,
    SaleMethodUpdateRequest,
    SaleResponse,
)
from app.register.services.totals import to_money

router = APIRouter()


def _sale_response(sale, lines) -> SaleResponse:
    return SaleResponse(
        id=sale.id,
        sale_date=sale.sale_date,
        subtotal=to_money(sale.subtotal),
        tax=to_money(sale.tax),
        total=to_money(sale.total),
        method=sale.method,
        lines=[
            SaleLineResponse(
                id=line.id,
                sale_id=line.sale_id,
                item=line.item,
                qty=line.qty,
                price=to_money(line.price),
                line_total=to_money(line.line_total),
            )
            for line in lines
        ],
    )


@router.get("/register/sales", response_model=SaleListResponse)
def list_sales(limit: int | None = Query(default=None, ge=1), db=Depends(get_db)):
    rows = SaleRepository(db).list_with_lines(limit or settings.RECENT_SALES_LIMIT)
    return SaleListResponse(rows=[_sale_response(sale, lines) for sale, lines in rows])


@router.get("/register/sales/{sale_id}", response_model=SaleResponse)
def get_sale(sale_id: int, db=Depends(get_db)):
    repo = SaleRepository(db)
    sale = repo.get(sale_id)
    if sale is None:
        raise NotFoundError(ErrorCatalog.SALE_NOT_FOUND, details={"sale_id": sale_id})
    return _sale_response(sale, repo.get_lines(sale_id))


@router.patch("/register/sales/{sale_id}", response_model=SaleResponse)
def update_sale_method(sale_id: int, payload: SaleMethodUpdateRequest, db=Depends(get_db)):
    repo = SaleRepository(db)
    sale = repo.update_method(sale_id, payload.method)
    if sale is None:
        raise NotFoundError(ErrorCatalog.SALE_NOT_FOUND, details={"sale_id": sale_id})
    return _sale_response(sale, repo.get_lines(sale_id))


@router.get("/register/changes", response_model=ChangeVersionsResponse)
def get_change_versions():
    return ChangeVersionsResponse(versions=change_feed.versions())
