"""Persistence layer: SQLAlchemy models, credential stores and counter stores."""
from models.db_storage import DBStorage

# Process-wide storage; the app factory points it at DATABASE_URL via reload()
storage = DBStorage()
