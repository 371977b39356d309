# Database package: MongoDB (pymongo) and Redis (redis.asyncio) connections
from .db import get_database, DatabaseConnection
from .redis_client import get_redis

__all__ = ["get_database", "DatabaseConnection", "get_redis"]
