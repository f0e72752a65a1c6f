from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Optional
import json
import logging
import threading

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from storefront.core.exceptions import DatabaseError
from storefront.utils.date_utils import DateUtils

logger = logging.getLogger(__name__)


class ClientStorage(ABC):
    """String key/value store that survives restarts, like a browser's localStorage"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def get_json(self, key: str) -> Optional[dict]:
        """Decode a stored JSON object; unreadable entries read as missing"""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring unreadable storage entry {key}")
            return None
        return value if isinstance(value, dict) else None

    def set_json(self, key: str, value: dict) -> None:
        self.set(key, json.dumps(value, sort_keys=True, default=str))


class MemoryStorage(ClientStorage):
    """In-process storage, seeded per web request or used in tests"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._values.get(key)

    def set(self, key, value):
        with self._lock:
            self._values[key] = value

    def delete(self, key):
        with self._lock:
            self._values.pop(key, None)


class SqlClientStorage(ClientStorage):
    """
    Storage in a single SQL table (SQLite by default)

    Demonstrates:
    - Lazy table creation
    - Upserts keyed by storage key
    """

    table_name = "client_storage"

    def __init__(self, url_or_engine):
        if isinstance(url_or_engine, Engine):
            self.engine = url_or_engine
        else:
            self.engine = create_engine(url_or_engine)
        self._ensure_table()

    @contextmanager
    def get_db_connection(self):
        """Transactional connection with error translation"""
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            logger.error(f"Client storage error: {str(e)}")
            raise DatabaseError(f"Client storage failed: {str(e)}")

    def _ensure_table(self) -> None:
        with self.get_db_connection() as conn:
            conn.execute(text(f"""
                CREATE TABLE IF NOT EXISTS {self.table_name} (
                    storage_key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """))

    def get(self, key):
        with self.get_db_connection() as conn:
            row = conn.execute(
                text(f"SELECT value FROM {self.table_name} WHERE storage_key = :key"),
                {"key": key},
            ).first()
        return row[0] if row else None

    def set(self, key, value):
        with self.get_db_connection() as conn:
            conn.execute(
                text(f"""
                    INSERT INTO {self.table_name} (storage_key, value, updated_at)
                    VALUES (:key, :value, :updated_at)
                    ON CONFLICT (storage_key) DO UPDATE
                    SET value = excluded.value, updated_at = excluded.updated_at
                """),
                {"key": key, "value": value, "updated_at": DateUtils.to_iso_string(DateUtils.now_utc())},
            )

    def delete(self, key):
        with self.get_db_connection() as conn:
            conn.execute(
                text(f"DELETE FROM {self.table_name} WHERE storage_key = :key"),
                {"key": key},
            )
