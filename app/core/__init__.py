from .config import settings
from .database import engine, SessionLocal, get_db, Base, atomic
from .logging_config import configure_logging

__all__ = ["settings", "engine", "SessionLocal", "get_db", "Base", "atomic", "configure_logging"]
