from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, ForeignKey, DateTime, text
from .account import Base


class Customer(Base):
    __tablename__ = 'customers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    devices = relationship('Device', back_populates='customer')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class Device(Base):
    __tablename__ = 'devices'
    TYPE_SMARTPHONE = 'smartphone'
    TYPE_TABLET = 'tablet'
    TYPE_LAPTOP = 'laptop'
    TYPE_DESKTOP = 'desktop'
    TYPE_GAME_CONSOLE = 'game_console'
    TYPE_SMARTWATCH = 'smartwatch'
    TYPE_OTHER = 'other'
    ALL_TYPES = (TYPE_SMARTPHONE, TYPE_TABLET, TYPE_LAPTOP, TYPE_DESKTOP, TYPE_GAME_CONSOLE, TYPE_SMARTWATCH, TYPE_OTHER)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey('customers.id', ondelete='CASCADE'), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default=TYPE_SMARTPHONE)
    brand: Mapped[str] = mapped_column(String(80), nullable=False)
    model: Mapped[str] = mapped_column(String(80), nullable=False)
    serial_number: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    imei: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    customer = relationship('Customer', back_populates='devices')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))
