import json
import logging
import threading
import redis
from typing import Any, Optional

from .config import REDIS_HOST, REDIS_PORT, REDIS_DB

logger = logging.getLogger(__name__)


class RedisClient:
    """Process-wide key-value store used for agent persistence.

    Values are stored as JSON strings under well-known keys. Backend errors
    are logged and turned into defaults so a missing or flaky Redis never
    fails a command.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super(RedisClient, cls).__new__(cls)
                cls._instance._init_connection()
            return cls._instance

    def _init_connection(self):
        try:
            self.client = redis.Redis(
                host=REDIS_HOST,
                port=REDIS_PORT,
                db=REDIS_DB,
                decode_responses=True
            )
            self.client.ping()
            logger.info("Connected to Redis successfully.")
        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self.client = None

    def get_json(self, key: str, default: Any = None) -> Any:
        """Read a JSON value, returning ``default`` when missing or unreadable."""
        if not self.client:
            return default
        try:
            raw = self.client.get(key)
        except Exception as e:
            logger.error(f"Error reading key {key}: {e}")
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding malformed JSON stored under {key}")
            return default

    def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Serialize ``value`` to JSON and store it. Returns False on failure."""
        if not self.client:
            return False
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Value for {key} is not JSON serializable: {e}")
            return False
        try:
            if ttl_seconds:
                self.client.setex(key, ttl_seconds, payload)
            else:
                self.client.set(key, payload)
            return True
        except Exception as e:
            logger.error(f"Error writing key {key}: {e}")
            return False

    def delete(self, key: str) -> None:
        if not self.client:
            return
        try:
            self.client.delete(key)
        except Exception as e:
            logger.error(f"Error deleting key {key}: {e}")
