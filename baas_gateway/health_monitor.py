# baas_gateway/health_monitor.py
"""
Health monitoring for the gateway's backing services (MongoDB and Redis)
Separated from main.py for better organization
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pymongo.errors import PyMongoError
from redis.exceptions import RedisError

from .database.db import DatabaseConnection
from .database.redis_client import get_redis

logger = logging.getLogger(__name__)


class HealthMonitor:
    def __init__(self, settings, mongo_ping: Optional[Callable[[], bool]] = None, redis=None):
        self.settings = settings
        self._mongo_ping = mongo_ping
        self._redis = redis

    def _ping_mongo(self) -> bool:
        if self._mongo_ping is not None:
            return self._mongo_ping()
        return DatabaseConnection().ping()

    async def _check_mongodb(self) -> Dict[str, Any]:
        try:
            healthy = await asyncio.get_running_loop().run_in_executor(None, self._ping_mongo)
        except (PyMongoError, ConnectionError) as e:
            return {"status": "unhealthy", "error": str(e), "connection": "failed"}
        if not healthy:
            return {"status": "unhealthy", "error": "ping failed", "connection": "failed"}
        return {"status": "healthy", "database_name": self.settings.DATABASE_NAME, "connection": "active"}

    async def _check_redis(self) -> Dict[str, Any]:
        redis = self._redis if self._redis is not None else get_redis()
        try:
            await asyncio.wait_for(redis.ping(), timeout=5.0)
        except (RedisError, asyncio.TimeoutError, OSError) as e:
            return {"status": "unhealthy", "error": str(e) or "timeout", "connection": "failed"}
        return {"status": "healthy", "connection": "active"}

    async def comprehensive_health_check(self) -> Dict[str, Any]:
        """Ping every backing service concurrently and summarise the result"""
        mongodb, redis = await asyncio.gather(self._check_mongodb(), self._check_redis())
        databases = {"mongodb": mongodb, "redis": redis}

        healthy = sum(1 for d in databases.values() if d["status"] == "healthy")
        if healthy == len(databases):
            overall = "healthy"
        elif healthy == 0:
            overall = "unhealthy"
        else:
            overall = "degraded"

        return {
            "overall_status": overall,
            "timestamp": datetime.now().isoformat(),
            "service": {
                "name": self.settings.SERVICE_NAME,
                "version": self.settings.SERVICE_VERSION,
                "environment": self.settings.ENVIRONMENT,
            },
            "databases": databases,
            "endpoints": {
                "health_simple": "/health",
                "health_detailed": "/health/services",
                "api_documentation": "/docs",
                "root_info": "/"
            }
        }

    async def startup_health_display(self):
        """Log backing service status during startup"""
        logger.info(f"🚀 {self.settings.SERVICE_NAME} v{self.settings.SERVICE_VERSION} starting "
                    f"({self.settings.ENVIRONMENT})")
        result = await self.comprehensive_health_check()
        for name, status in result["databases"].items():
            if status["status"] == "healthy":
                logger.info(f"✅ {name}: healthy")
            else:
                logger.warning(f"❌ {name}: {status.get('error')}")
