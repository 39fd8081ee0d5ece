"""
SQLAlchemy модели локального хранилища
Имена таблиц совпадают с коллекциями PocketBase
"""
from .slot import Slot
from .appointment import Appointment
from .customer import Customer
from .reference import Team, Company, AppointmentCategory

# Коллекция -> модель
COLLECTION_MODELS = {
    model.__tablename__: model
    for model in (Slot, Appointment, Customer, Team, Company, AppointmentCategory)
}

__all__ = [
    "Slot",
    "Appointment",
    "Customer",
    "Team",
    "Company",
    "AppointmentCategory",
    "COLLECTION_MODELS"
]
