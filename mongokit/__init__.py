"""
mongokit: ObjectId generation and a thin helper layer over pymongo.
"""

from mongokit.config import Settings, get_settings, load_env_file
from mongokit.objectid import (
    ObjectIdGenerator,
    ObjectIdParts,
    generate,
    new_object_id,
    parse_object_id,
)
from mongokit.database import MongoDBClient, UpdateType

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "load_env_file",

    # Identifiers
    "ObjectIdGenerator",
    "ObjectIdParts",
    "generate",
    "new_object_id",
    "parse_object_id",

    # Database helpers
    "MongoDBClient",
    "UpdateType",
]
