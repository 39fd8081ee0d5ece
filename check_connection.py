"""
Скрипт проверки подключения к бэкенду из настроек (.env)
Запустить: python check_connection.py
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "backend"))

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from crm.config import get_settings
from crm.database import create_db_engine
from crm.exceptions import CrmError
from crm.schemas import SLOTS
from crm.services.context import create_pocketbase_context

settings = get_settings()


def check_database():
    """Проверка подключения к локальной базе"""
    engine = create_db_engine(settings.DATABASE_URL)
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        print("\n✅ УСПЕШНО! База данных подключена!")
        print(f"🔗 {settings.DATABASE_URL}")
    except OperationalError as e:
        print("\n❌ ОШИБКА подключения к базе данных!")
        print(f"Детали: {e}")
        print("\n💡 Проверьте DATABASE_URL в .env")
    finally:
        engine.dispose()


async def check_pocketbase():
    """Проверка входа и чтения слотов PocketBase"""
    context = create_pocketbase_context(settings)
    try:
        user = await context.auth.authenticate()
        result = await context.store.get_list(SLOTS, 1, 1)
        print("\n✅ УСПЕШНО! PocketBase подключен!")
        print(f"👤 Пользователь: {(user or {}).get('email') or (user or {}).get('id')}")
        print(f"📊 Слотов: {result.get('totalItems', 0)}")
    except CrmError as e:
        print("\n❌ ОШИБКА подключения к PocketBase!")
        print(f"Детали: {e}")
        print("\n💡 Возможные причины:")
        print("1. PocketBase не запущен или POCKETBASE_URL указан неверно")
        print("2. Неправильные POCKETBASE_EMAIL / POCKETBASE_PASSWORD")
        print("3. У пользователя нет доступа к коллекции слотов")
    finally:
        await context.close()


if __name__ == "__main__":
    print(f"🔍 Проверка подключения (BACKEND={settings.BACKEND})...")
    print("=" * 50)
    if settings.BACKEND == "pocketbase":
        asyncio.run(check_pocketbase())
    else:
        check_database()
