"""
Конфигурация приложения
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """Настройки приложения"""

    # Бэкенд данных: local (SQLAlchemy) или pocketbase (удалённый сервер)
    BACKEND: str = "local"

    # PocketBase
    POCKETBASE_URL: str = "http://127.0.0.1:8090"
    POCKETBASE_EMAIL: Optional[str] = None
    POCKETBASE_PASSWORD: Optional[str] = None
    POCKETBASE_AUTH_COLLECTION: str = "users"  # _admins = вход администратора
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    REALTIME_RECONNECT_SECONDS: float = 3.0

    # Локальная база данных
    DATABASE_URL: str = "sqlite:///./crm.db"

    # Повторы запросов
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0

    # Календарь
    RELOAD_DEBOUNCE_SECONDS: float = 0.3
    SLOT_PAGE_SIZE: int = 100
    APPOINTMENT_PAGE_SIZE: int = 500
    WEEK_STARTS_ON: int = 0  # 0=Пн, 6=Вс

    # Security
    SECRET_KEY: str = "local-development-secret-key-change-in-production"

    # Admin Panel
    ADMIN_PASSWORD: str = "crm2024"

    # Development
    DEBUG: bool = True
    ENVIRONMENT: str = "development"

    class Config:
        # Путь к .env относительно корня проекта
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Получить настройки приложения (с кешированием)"""
    return Settings()
