"""
Модель клиента (лида)
"""
from sqlalchemy import Column, String, Integer, Text, DateTime
from ..database import Base, generate_id, utcnow


class Customer(Base):
    """Клиент с двумя независимыми статусами контроля качества"""

    __tablename__ = "customers"

    id = Column(String(15), primary_key=True, default=generate_id)
    surname = Column(String(100), default="")
    tel = Column(String(30), default="", index=True)
    home_tel = Column(String(30), default="")
    email = Column(String(100), default="")
    home_people_number = Column(Integer, default=0)
    age = Column(Integer, default=0)
    location = Column(String(100), default="")
    street = Column(String(200), default="")
    postal_code = Column(String(20), default="")
    who_is_customer = Column(String(100), default="")
    roof_type = Column(String(100), default="")
    what_talked = Column(Text, default="")
    roof = Column(String(100), default="")
    note = Column(Text, default="")
    qc_on = Column(String(30), default="Yeni")  # Yeni, Aranacak, Rausgefallen, Rausgefallen WP
    qc_final = Column(String(30), default="Yeni")  # Yeni, Okey, Rausgefallen, Rausgefallen WP, Neuleger, Neuleger WP
    agent = Column(String(15), default="")
    created = Column(DateTime, default=utcnow)
    updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Customer {self.surname} ({self.tel})>"
