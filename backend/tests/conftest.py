"""
Общие фикстуры: локальное хранилище на SQLite в памяти
"""
import pytest
from sqlalchemy.orm import sessionmaker

from crm.config import Settings
from crm.database import create_db_engine, init_db
from crm.services.context import create_local_context


@pytest.fixture
def settings():
    return Settings(
        BACKEND="local",
        RETRY_BASE_DELAY_SECONDS=0,
        RELOAD_DEBOUNCE_SECONDS=0.05,
        SLOT_PAGE_SIZE=2,
        APPOINTMENT_PAGE_SIZE=3
    )


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def context(session_factory, settings):
    return create_local_context(session_factory, settings)


@pytest.fixture
def slot_data():
    """Данные слота 11:00-19:00 с шагом 120 минут"""
    def make(**overrides):
        data = {
            "name": "Beratung",
            "date": "2025-03-12",
            "start": "11:00",
            "end": "19:00",
            "space": 120,
            "capacity": 1,
            "team": "",
            "category": "",
            "company": ""
        }
        data.update(overrides)
        return data
    return make
