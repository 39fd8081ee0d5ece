"""
Модель слота (окно записи на дату)
"""
from sqlalchemy import Column, String, Integer, Boolean, JSON, DateTime
from ..database import Base, generate_id, utcnow


class Slot(Base):
    """Слот: временное окно команды, разбитое на записи по space минут"""

    __tablename__ = "appointments_slots"

    id = Column(String(15), primary_key=True, default=generate_id)
    name = Column(String(200), nullable=False, default="")
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    start = Column(String(5), nullable=False)  # HH:MM
    end = Column(String(5), nullable=False)  # HH:MM
    capacity = Column(Integer, default=1)
    space = Column(Integer, nullable=False)  # минуты
    category = Column(String(15), default="", index=True)
    company = Column(String(15), default="", index=True)
    team = Column(String(15), default="", index=True)
    deaktif = Column(Boolean, default=False)
    appointments = Column(JSON, default=list)  # упорядоченные ID записей
    created = Column(DateTime, default=utcnow)
    updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Slot {self.name} {self.date} {self.start}-{self.end}>"
