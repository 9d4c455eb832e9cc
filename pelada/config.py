from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _default_db_url() -> str:
    return f"sqlite:///{BASE_DIR}/data/pelada.db"


class Settings(BaseSettings):
    # --- DATABASE ---
    DATABASE_URL: str = _default_db_url()
    LOG_LEVEL: str = "INFO"

    # --- LEDGER ---
    STARTING_BALANCE: float = 1000.0

    # --- MATCH RESULT ODDS ---
    HOUSE_MARGIN: float = 0.15
    MIN_ODD: float = 1.01

    # --- PLAYER MARKETS (POISSON) ---
    POISSON_ODDS_CAP: float = 100.0
    BLOCKED_ODDS_THRESHOLD: float = 999.0
    # Comma-separated in .env, same as the other list-like fields
    MARKET_LINES: str = "0.5,1.5,2.5,3.5"

    # --- LINEUPS ---
    MIN_TEAM_SIZE: int = 4
    MAX_TEAM_SIZE: int = 11

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def _default_database_url(cls, v):
        # If .env contains an empty DATABASE_URL, fall back to the default
        if v is None or (isinstance(v, str) and v.strip() == ""):
            return _default_db_url()
        return v


settings = Settings()


# Normalize comma-separated env fields into Python lists for runtime convenience.
def _to_float_list(value) -> list[float]:
    if value is None:
        return []
    if isinstance(value, list):
        return [float(v) for v in value]
    return [float(s.strip()) for s in str(value).split(",") if s.strip()]


settings.MARKET_LINES = _to_float_list(settings.MARKET_LINES)
