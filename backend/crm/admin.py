"""
Админ-панель локальной базы
Доступ: http://localhost:8000/admin
Логин: admin / Пароль: из .env (ADMIN_PASSWORD) или по умолчанию crm2024
"""
from sqladmin import Admin, ModelView
from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request
from .config import get_settings
from .models.slot import Slot
from .models.appointment import Appointment
from .models.customer import Customer
from .models.reference import Team, Company, AppointmentCategory

settings = get_settings()

ADMIN_USERNAME = "admin"


class AdminAuth(AuthenticationBackend):
    """Простая авторизация для админки"""

    async def login(self, request: Request) -> bool:
        form = await request.form()
        username = form.get("username")
        password = form.get("password")

        if username == ADMIN_USERNAME and password == settings.ADMIN_PASSWORD:
            request.session.update({"authenticated": True})
            return True
        return False

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    async def authenticate(self, request: Request) -> bool:
        return request.session.get("authenticated", False)


# ==================== МОДЕЛИ ДЛЯ АДМИНКИ ====================

class SlotAdmin(ModelView, model=Slot):
    """Слоты"""
    name = "Слот"
    name_plural = "Слоты"
    icon = "fa-solid fa-calendar-days"

    column_list = [
        Slot.id,
        Slot.name,
        Slot.date,
        Slot.start,
        Slot.end,
        Slot.space,
        Slot.team,
        Slot.deaktif
    ]
    column_searchable_list = [Slot.name, Slot.date]
    column_sortable_list = [Slot.date, Slot.start, Slot.created]
    column_default_sort = [(Slot.date, True)]

    column_labels = {
        "id": "ID",
        "name": "Название",
        "date": "Дата",
        "start": "Начало",
        "end": "Конец",
        "space": "Интервал (мин)",
        "capacity": "Вместимость",
        "team": "Команда",
        "company": "Компания",
        "category": "Категория",
        "deaktif": "Неактивен",
        "appointments": "Записи",
        "created": "Создано"
    }


class AppointmentAdmin(ModelView, model=Appointment):
    """Записи в слотах"""
    name = "Запись"
    name_plural = "Записи"
    icon = "fa-solid fa-calendar-check"

    column_list = [
        Appointment.id,
        Appointment.title,
        Appointment.date,
        Appointment.time,
        Appointment.status,
        Appointment.customer,
        Appointment.agent
    ]
    column_searchable_list = [Appointment.title, Appointment.status]
    column_sortable_list = [Appointment.date, Appointment.time, Appointment.status]
    column_default_sort = [(Appointment.date, True)]

    column_labels = {
        "id": "ID",
        "slot": "Слот",
        "title": "Заголовок",
        "description": "Описание",
        "date": "Дата",
        "time": "Время",
        "status": "Статус",
        "customer": "Клиент",
        "agent": "Агент",
        "created": "Создано"
    }


class CustomerAdmin(ModelView, model=Customer):
    """Клиенты"""
    name = "Клиент"
    name_plural = "Клиенты"
    icon = "fa-solid fa-users"

    column_list = [
        Customer.id,
        Customer.surname,
        Customer.tel,
        Customer.location,
        Customer.qc_on,
        Customer.qc_final,
        Customer.created
    ]
    column_searchable_list = [Customer.surname, Customer.tel, Customer.email, Customer.location]
    column_sortable_list = [Customer.surname, Customer.created, Customer.qc_on, Customer.qc_final]
    column_default_sort = [(Customer.created, True)]

    column_labels = {
        "id": "ID",
        "surname": "Фамилия",
        "tel": "Телефон",
        "home_tel": "Домашний телефон",
        "email": "Email",
        "location": "Город",
        "street": "Улица",
        "postal_code": "Индекс",
        "qc_on": "QC (предв.)",
        "qc_final": "QC (финал)",
        "note": "Заметки",
        "created": "Создано"
    }


class TeamAdmin(ModelView, model=Team):
    name = "Команда"
    name_plural = "Команды"
    icon = "fa-solid fa-people-group"

    column_list = [Team.id, Team.name, Team.deaktif]


class CompanyAdmin(ModelView, model=Company):
    name = "Компания"
    name_plural = "Компании"
    icon = "fa-solid fa-building"

    column_list = [Company.id, Company.name, Company.deaktif]


class CategoryAdmin(ModelView, model=AppointmentCategory):
    name = "Категория"
    name_plural = "Категории"
    icon = "fa-solid fa-tags"

    column_list = [AppointmentCategory.id, AppointmentCategory.name, AppointmentCategory.deaktif]


def setup_admin(app, engine):
    """Настройка админ-панели"""
    authentication_backend = AdminAuth(secret_key=settings.SECRET_KEY)

    admin = Admin(
        app,
        engine,
        authentication_backend=authentication_backend,
        title="CRM Admin",
        base_url="/admin"
    )

    # Регистрация моделей
    admin.add_view(SlotAdmin)
    admin.add_view(AppointmentAdmin)
    admin.add_view(CustomerAdmin)
    admin.add_view(TeamAdmin)
    admin.add_view(CompanyAdmin)
    admin.add_view(CategoryAdmin)

    return admin
