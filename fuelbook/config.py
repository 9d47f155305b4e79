from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///fuelbook.db"
    backup_dir: str = "fuelbook_backup"
    autosave_interval: float = 30.0
    save_retries: int = 2
    per_liter_discount: float = 1.0
    app_name: str = "Fuel Record Book"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FUELBOOK_", case_sensitive=False)


settings = Settings()
