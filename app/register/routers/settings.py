from decimal import Decimal

from fastapi import APIRouter, Depends

from app.register.core.deps import get_tax_config
from app.register.schemas.catalog import TaxRateResponse, TaxRateUpdateRequest
from app.register.services.tax_rate import TaxRateConfig

router = APIRouter()


def _tax_rate_response(rate: Decimal) -> TaxRateResponse:
    return TaxRateResponse(tax_rate=rate, tax_rate_percent=rate * 100)


@router.get("/register/settings/tax-rate", response_model=TaxRateResponse)
def get_tax_rate(tax_config: TaxRateConfig = Depends(get_tax_config)):
    return _tax_rate_response(tax_config.get())


@router.put("/register/settings/tax-rate", response_model=TaxRateResponse)
def set_tax_rate(payload: TaxRateUpdateRequest, tax_config: TaxRateConfig = Depends(get_tax_config)):
    return _tax_rate_response(tax_config.set(payload.tax_rate))
