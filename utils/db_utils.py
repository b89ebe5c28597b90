import logging
import os

import pymongo
from pymongo.errors import PyMongoError

from utils.secrets import get_secret

# Global cache for the MongoDB client to enable connection pooling across invocations
_CLIENT_CACHE = None

# Checked in order; the first one set wins
CONNECTION_STRING_KEYS = [
    "MongoDb-Connection-String",
    "MONGODB_CONNECTION_STRING",
    "CUSTOMCONNSTR_MongoDb-Connection-String",
    "MONGODB_URI",
]

DEFAULT_DB_NAME = "Logistics_Platform"


class ConnectionStringMissing(RuntimeError):
    pass


def resolve_connection_string() -> str | None:
    for key in CONNECTION_STRING_KEYS:
        val = os.getenv(key)
        if val:
            return val
    # Key Vault names cannot carry the CUSTOMCONNSTR_ prefix; ask for the canonical one only
    return get_secret("MONGODB_CONNECTION_STRING")


def get_db_client(**kwargs):
    """
    Returns a PyMongo client using the connection string from environment variables.
    Uses a global cache to reuse the client across Azure Function invocations.
    """
    global _CLIENT_CACHE

    if _CLIENT_CACHE is not None:
        return _CLIENT_CACHE

    uri = resolve_connection_string()
    if not uri:
        # CRITICAL: Prevent fallback to localhost:27017
        error_msg = f"MongoDB Connection String not found in environment variables. Checked: {CONNECTION_STRING_KEYS}"
        logging.critical(error_msg)
        raise ConnectionStringMissing(error_msg)

    kwargs.setdefault("tz_aware", True)
    kwargs.setdefault("serverSelectionTimeoutMS", 5000)
    try:
        client = pymongo.MongoClient(uri, **kwargs)
    except PyMongoError as e:
        logging.critical("Failed to create MongoClient: %s", e)
        raise

    _CLIENT_CACHE = client
    return client


def get_db_name() -> str:
    return os.getenv("LEADERBOARD_DB_NAME") or os.getenv("DB_NAME") or DEFAULT_DB_NAME


def get_db():
    """
    Returns the database object.
    """
    client = get_db_client()
    return client[get_db_name()]
