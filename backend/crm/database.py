"""
Подключение к локальной базе данных (SQLite или PostgreSQL)
"""
import secrets
import string
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings

settings = get_settings()

ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 15


def generate_id() -> str:
    """ID записи в формате PocketBase (15 символов a-z0-9)"""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_db_engine(database_url: str, echo: bool = False):
    """
    Создать движок базы данных
    sqlite:// без пути - общая БД в памяти (для тестов)
    """
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )

    if database_url.startswith("sqlite"):
        # SQLite - для локальной разработки
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo
        )

    # PostgreSQL - для продакшена
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        echo=echo
    )


# Создание движка базы данных
engine = create_db_engine(settings.DATABASE_URL)

# Создание фабрики сессий
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Базовый класс для моделей
Base = declarative_base()


def init_db(bind=None):
    """
    Инициализация базы данных
    Создание всех таблиц, определенных в моделях
    """
    from . import models  # noqa: F401 - регистрация моделей в metadata

    Base.metadata.create_all(bind=bind or engine)
