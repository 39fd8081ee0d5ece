"""
Модель записи внутри слота
"""
from sqlalchemy import Column, String, Text, DateTime
from ..database import Base, generate_id, utcnow


class Appointment(Base):
    """Запись (одна единица бронирования в слоте)"""

    __tablename__ = "appointments"

    id = Column(String(15), primary_key=True, default=generate_id)
    slot = Column(String(15), nullable=False, index=True)
    title = Column(String(255), default="")
    description = Column(Text, default="")
    date = Column(String(10), default="")  # YYYY-MM-DD
    time = Column(String(5), default="")  # HH:MM
    status = Column(String(10), default="empty", index=True)  # empty, edit, okay
    customer = Column(String(15), default="")
    agent = Column(String(15), default="")
    created = Column(DateTime, default=utcnow)
    updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Appointment {self.date} {self.time} (Status: {self.status})>"
