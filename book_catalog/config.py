import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "2002"))
    api_base_url: str = os.getenv("API_BASE_URL", "")
    cors_origins: List[str] = field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )

    # Application
    app_name: str = os.getenv("APP_NAME", "Book Catalog")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _flag("DEBUG", "False")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Catalog
    default_caller: str = os.getenv("DEFAULT_CALLER", "default")
    seed_demo_data: bool = _flag("SEED_DEMO_DATA", "True")

    # CLI client
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "10"))

    def __post_init__(self) -> None:
        if not self.api_base_url:
            self.api_base_url = f"http://{self.api_host}:{self.api_port}"


settings = Settings()
