# backend/casegate/db/__init__.py

"""
Database Module

Contains SQLAlchemy models, Pydantic schemas, and database configuration.
"""

from casegate.db.database import Base, engine, SessionLocal, get_db
from casegate.db import models, schemas

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'get_db',
    'models',
    'schemas'
]
