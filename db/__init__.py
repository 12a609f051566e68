"""Database package for the identity reconciliation service."""
from db.connection import create_engine, create_session_factory, dispose_engine, get_db

__all__ = ["create_engine", "create_session_factory", "get_db", "dispose_engine"]
