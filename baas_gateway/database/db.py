# baas_gateway/database/db.py
import logging
from pymongo.database import Database
from ..config import get_settings
from .mongo_helper import create_mongo_client, ping_database

logger = logging.getLogger(__name__)

class DatabaseConnection:
    _instance = None
    _db = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DatabaseConnection, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._db is None:
            settings = get_settings()
            mongo_uri = settings.MONGODB_URI
            db_name = settings.DATABASE_NAME

            logger.info("🔄 Initializing MongoDB connection...")
            self.client = create_mongo_client(mongo_uri, max_retries=5, retry_delay=2)

            if self.client is None:
                logger.error("❌ Failed to create MongoDB client after multiple attempts")
                raise ConnectionError("Unable to connect to MongoDB")

            self._db = self.client[db_name]
            logger.info(f"✅ MongoDB connection established successfully for database '{db_name}'")

            self._create_indexes()

    def ping(self) -> bool:
        return ping_database(self.client)

    def close_connection(self):
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            logger.info("🔒 MongoDB connection closed")

    def _create_indexes(self):
        """Create database indexes"""
        # Users indexes
        self._db.users.create_index("email", unique=True)
        self._db.users.create_index("id", unique=True)
        self._db.users.create_index("authorizer_id")

        # Refresh tokens indexes
        self._db.refresh_tokens.create_index("token", unique=True)
        self._db.refresh_tokens.create_index("user_id")
        self._db.refresh_tokens.create_index("expires_at", expireAfterSeconds=0)

        # Stripe webhook bookkeeping
        self._db.stripe_idempotency_keys.create_index("key", unique=True)
        self._db.stripe_idempotency_keys.create_index("expire_at", expireAfterSeconds=0)
        self._db.stripe_audit.create_index("event_type")

    @property
    def db(self) -> Database:
        return self._db

def get_database() -> Database:
    """Get database instance"""
    return DatabaseConnection().db
