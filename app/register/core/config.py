from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "Register POS"
    STORE_NAME: str = "Recon Battery Warehouse"
    DATABASE_URL: str = "sqlite+pysqlite:///./register.db"
    TAX_RATE: float = 0.07625
    TAX_ENABLED_DEFAULT: bool = True
    CONFIRM_LOAD_OVER_UNSAVED: bool = True
    SEED_SAMPLE_PRODUCTS: bool = True
    RECENT_SALES_LIMIT: int = 50
    METRICS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
