# backend/rental_pricing/core/config.py
from decimal import Decimal
from pydantic_settings import BaseSettings
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import secrets
from typing import List, Literal


class Settings(BaseSettings):
    # --- Security / JWT ---
    SECRET_KEY: str = secrets.token_urlsafe(32)  # set via ENV in prod
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24h

    # --- Database ---
    DATABASE_URL: str = "sqlite:///./rentals.db"

    # --- CORS ---
    CORS_ALLOW_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # --- Pricing ---
    PRICE_QUANTUM: Decimal = Decimal("0.01")
    OVERAGE_TOLERANCE: Decimal = Decimal("0.01")
    PAYMENT_TOLERANCE: Decimal = Decimal("0.01")
    # "extension": tiers index the extension hours alone (hour 0 = first extended hour)
    # "cumulative": tiers index the whole rental duration (elapsed + extension)
    TIER_BASIS: Literal["extension", "cumulative"] = "extension"
    EXTENSION_RATE_TYPE: Literal["hourly", "daily", "weekly"] = "hourly"
    ALLOW_LEGACY_VEHICLE_RATES: bool = True

    # --- Extensions ---
    APPLY_MAX_RETRIES: int = 3
    AUTO_APPROVE_ROLES: List[str] = ["admin", "owner"]

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

# SQLite needs check_same_thread off for the threaded server
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# SQLAlchemy Engine & Session
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
