from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    # App
    APP_ENV: str = "development"
    DEBUG: bool = True
    CORS_ORIGINS: list[str] = ["https://cargoflash.com.br"]

    # MongoDB
    MONGO_URL: str = "mongodb://localhost:27017"
    DB_NAME: str = "CargoFlash"

    # Simulation : valeurs par défaut tant qu'aucune config n'est enregistrée en base
    SIMULATION_TIMEZONE: str = "America/Sao_Paulo"
    ORIGIN_COMPANY_NAME: str = "Cargo Flash"
    ORIGIN_ADDRESS: Optional[str] = None
    ORIGIN_CITY: str = "São Paulo"
    ORIGIN_STATE: str = "SP"
    ORIGIN_ZIP: Optional[str] = None
    ORIGIN_LAT: float = -23.5505
    ORIGIN_LNG: float = -46.6333
    MIN_DELIVERY_DAYS: int = 15
    MAX_DELIVERY_DAYS: int = 19
    UPDATE_START_HOUR: int = 8
    UPDATE_END_HOUR: int = 18

    # Job d'application des événements dus (0 = désactivé)
    PROCESS_EVENTS_INTERVAL_SECONDS: int = 300
    PROCESS_EVENTS_BATCH_SIZE: int = 50

    model_config = SettingsConfigDict(
        env_file=[".env", "../.env"],  # cherche dans backend/ puis dans la racine
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
