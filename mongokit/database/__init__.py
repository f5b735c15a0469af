"""
MongoDB helper layer.

This package provides a connection holder with timeout-wrapped helpers for
common CRUD, aggregation and update-operator patterns.
"""

from mongokit.database.client import MongoDBClient
from mongokit.database.update_type import UpdateType

__all__ = ['MongoDBClient', 'UpdateType']
