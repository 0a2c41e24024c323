# models/base.py
from sqlalchemy import Column, DateTime, MetaData, func
from sqlalchemy.orm import DeclarativeBase

# Deterministic constraint names so Alembic can drop/alter them on MS SQL
NAMING_CONVENTION = {
     "ix": "ix_%(table_name)s_%(column_0_name)s",
     "uq": "uq_%(table_name)s_%(column_0_name)s",
     "fk": "fk_%(table_name)s_%(column_0_name)s",
     "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
     """Declarative base shared by the invoice models."""

     metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
     """created_at / updated_at columns shared by mutable tables."""

     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
