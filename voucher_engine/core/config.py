from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env lives at the project root: voucher_engine/core/config.py -> core -> voucher_engine -> root
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"


class Settings(BaseSettings):
    database_url: str = "sqlite:///./vouchers.db"
    # Admin catalogue routes (X-Admin-Secret); empty disables them with 503
    admin_secret: str = ""
    # CORS: comma separated origins; "*" allows all
    cors_origins: str = "*"
    # Per-IP limits: previews (available/validate) and commits (use/use-multiple)
    rate_limit_per_minute: int = 60
    rate_limit_commit_per_minute: int = 20
    # Amounts are integers in the smallest unit of this currency
    currency: str = "VND"
    usage_history_max_limit: int = 100
    environment: str = "development"

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("admin_secret", mode="before")
    @classmethod
    def strip_admin_secret(cls, v: str | None) -> str:
        """Stray whitespace from copy/paste would make every compare fail."""
        return (v or "").strip()

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v: str | None) -> str:
        return (v or "VND").strip().upper()


settings = Settings()
