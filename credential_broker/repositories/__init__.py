"""Persistence repositories."""

from .connection_status_repository import ConnectionStatusRepository

__all__ = ["ConnectionStatusRepository"]
