"""
Справочники, на которые ссылается слот
"""
from sqlalchemy import Column, String, Boolean, DateTime
from ..database import Base, generate_id, utcnow


class Team(Base):
    """Команда"""

    __tablename__ = "teams"

    id = Column(String(15), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    deaktif = Column(Boolean, default=False)
    created = Column(DateTime, default=utcnow)
    updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Team {self.name}>"


class Company(Base):
    """Компания"""

    __tablename__ = "companies"

    id = Column(String(15), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    deaktif = Column(Boolean, default=False)
    created = Column(DateTime, default=utcnow)
    updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Company {self.name}>"


class AppointmentCategory(Base):
    """Категория записей"""

    __tablename__ = "appointments_category"

    id = Column(String(15), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    deaktif = Column(Boolean, default=False)
    created = Column(DateTime, default=utcnow)
    updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<AppointmentCategory {self.name}>"
