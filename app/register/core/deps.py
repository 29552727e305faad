from fastapi import Request

from app.register.services.register import RegisterController
from app.register.services.runner import OperationRunner
from app.register.services.tax_rate import TaxRateConfig


def get_register(request: Request) -> RegisterController:
    return request.app.state.register


def get_runner(request: Request) -> OperationRunner:
    return request.app.state.runner


def get_tax_config(request: Request) -> TaxRateConfig:
    return request.app.state.tax_config
