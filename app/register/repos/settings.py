from datetime import datetime
from decimal import Decimal

from app.register.db.models import RegisterSetting
from app.register.repos.transaction import atomic, reading

_SETTINGS_ROW_ID = 1


class SettingsRepository:
    def __init__(self, db):
        self.db = db

    def get_tax_rate(self) -> Decimal | None:
        with reading(self.db):
            row = self.db.get(RegisterSetting, _SETTINGS_ROW_ID)
        if row is None:
            return None
        return Decimal(str(row.tax_rate))

    def set_tax_rate(self, rate: Decimal) -> None:
        with atomic(self.db, "register_settings"):
            row = self.db.get(RegisterSetting, _SETTINGS_ROW_ID)
            if row is None:
                row = RegisterSetting(id=_SETTINGS_ROW_ID, tax_rate=float(rate))
                self.db.add(row)
            row.tax_rate = float(rate)
            row.updated_at = datetime.utcnow()
