from __future__ import annotations
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "zari_perfumes"
    ADMIN_PASSWORD: str = "change-me"
    LOG_LEVEL: str = "INFO"
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    STORE_SITE_URL: str = "https://zariperfumes.github.io"
    CORS_ORIGINS: list[str] = ["*"]
    # Carts untouched for this long are forgotten
    SESSION_MAX_IDLE: int = 60 * 60 * 24

    # Transactional email (EmailJS REST API)
    EMAIL_API_URL: str = "https://api.emailjs.com/api/v1.0/email/send"
    EMAIL_SERVICE_ID: str = ""
    EMAIL_TEMPLATE_ID: str = ""
    EMAIL_PUBLIC_KEY: str = ""


settings = Settings()
