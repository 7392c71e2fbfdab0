"""Database configuration and utilities."""

from .session import Base, Database, DocumentBase

__all__ = ["Base", "Database", "DocumentBase"]
