from __future__ import annotations

import logging
from collections.abc import Callable
from decimal import Decimal

from app.register.repos.settings import SettingsRepository
from app.register.services.totals import validate_tax_rate

logger = logging.getLogger(__name__)

TaxRateListener = Callable[[Decimal], None]


class TaxRateConfig:
    """Register-wide tax rate, persisted so it survives restarts.

    ``get`` reads the stored value every time; callers must not hold on to
    it, so a change made from the settings page applies to the very next
    total that gets computed.
    """

    def __init__(self, session_factory, default_rate: object):
        self._session_factory = session_factory
        self._default_rate = validate_tax_rate(default_rate)
        self._listeners: list[TaxRateListener] = []

    def get(self) -> Decimal:
        with self._session_factory() as db:
            rate = SettingsRepository(db).get_tax_rate()
        return self._default_rate if rate is None else rate

    def set(self, rate: object) -> Decimal:
        validated = validate_tax_rate(rate)
        with self._session_factory() as db:
            SettingsRepository(db).set_tax_rate(validated)
        for listener in list(self._listeners):
            try:
                listener(validated)
            except Exception:
                logger.exception("Tax rate listener failed", extra={"tax_rate": str(validated)})
        return validated

    def subscribe(self, listener: TaxRateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
