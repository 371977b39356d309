# baas_gateway/database/mongo_helper.py
"""
MongoDB connection helpers: client creation with retry/backoff and a ping probe
"""
import logging
import time
from typing import Optional
from pymongo import MongoClient
from pymongo.errors import ConfigurationError, OperationFailure, PyMongoError, ServerSelectionTimeoutError

logger = logging.getLogger(__name__)

CLIENT_OPTIONS = {
    'serverSelectionTimeoutMS': 10000,
    'connectTimeoutMS': 10000,
    'socketTimeoutMS': 30000,
    'maxPoolSize': 20,
    'retryWrites': True,
    'tz_aware': False,
    'appName': 'baas-gateway',
}


def create_mongo_client(mongo_uri: str, max_retries: int = 3, retry_delay: int = 2) -> Optional[MongoClient]:
    """
    Connect and ping, backing off exponentially between attempts.

    Returns None once every attempt has failed; a malformed URI fails immediately.
    """
    options = dict(CLIENT_OPTIONS)
    # Atlas style URIs always need TLS
    if mongo_uri.startswith("mongodb+srv://"):
        options['tls'] = True

    for attempt in range(1, max_retries + 1):
        client = None
        try:
            logger.info(f"🔄 MongoDB connection attempt {attempt}/{max_retries}")
            client = MongoClient(mongo_uri, **options)
            client.admin.command('ping')
            logger.info(f"✅ MongoDB connected on attempt {attempt}")
            return client
        except ConfigurationError as e:
            logger.error(f"❌ Invalid MongoDB configuration: {e}")
            return None
        except ServerSelectionTimeoutError as e:
            logger.warning(f"⚠️ MongoDB server selection timeout (attempt {attempt}): {str(e)[:200]}")
        except OperationFailure as e:
            logger.error(f"❌ MongoDB authentication/operation failed (attempt {attempt}): {str(e)[:200]}")
        except PyMongoError as e:
            logger.error(f"❌ MongoDB connection failed (attempt {attempt}): {str(e)[:200]}")

        if client is not None:
            client.close()
        if attempt < max_retries:
            wait_time = retry_delay * (2 ** (attempt - 1))
            logger.info(f"🔄 Retrying in {wait_time} seconds...")
            time.sleep(wait_time)

    logger.error("❌ All MongoDB connection attempts failed")
    return None


def ping_database(client: MongoClient) -> bool:
    try:
        client.admin.command('ping')
    except PyMongoError as e:
        logger.error(f"❌ MongoDB ping failed: {str(e)[:200]}")
        return False
    return True
