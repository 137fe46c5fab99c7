"""
Shared store capability and reference backends
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import StorageError


logger = logging.getLogger(__name__)


class SharedStore(ABC):
    """Key/value capability threaded through every phase call"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store value under key"""
        pass

    @abstractmethod
    def remove(self, key: str) -> Any:
        """Remove key, returning the previous value if there was one"""
        pass

    @abstractmethod
    def contains(self, key: str) -> bool:
        """Check whether key is present"""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """List every stored key"""
        pass

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)

    def to_dict(self) -> Dict[str, Any]:
        return {key: self.get(key) for key in self.keys()}

    def __contains__(self, key: str) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        return len(self.keys())


class InMemoryStore(SharedStore):
    """Dictionary backed store, the default for tests and single runs"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> Any:
        return self._data.pop(key, None)

    def contains(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def clear(self) -> None:
        self._data.clear()


class JsonFileStore(SharedStore):
    """Store persisted as a single JSON document, rewritten on every write"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to load store file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Store file {self.path} does not contain a JSON object")
        return data

    def _flush(self) -> None:
        try:
            payload = json.dumps(self._data, ensure_ascii=False, indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                f.write(payload)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to write store file {self.path}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            previous = self._data.get(key)
            had_key = key in self._data
            self._data[key] = value
            try:
                self._flush()
            except StorageError:
                if had_key:
                    self._data[key] = previous
                else:
                    self._data.pop(key, None)
                raise

    def remove(self, key: str) -> Any:
        with self._lock:
            if key not in self._data:
                return None
            value = self._data.pop(key)
            try:
                self._flush()
            except StorageError:
                self._data[key] = value
                raise
            return value

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def clear(self) -> None:
        with self._lock:
            previous = self._data
            self._data = {}
            try:
                self._flush()
            except StorageError:
                self._data = previous
                raise


class SQLStore(SharedStore):
    """Store backed by a relational database through SQLAlchemy Core

    Values are kept as JSON text in a single ``key_value_store`` table.
    """

    def __init__(self, database_url: str = "sqlite:///:memory:", table_name: str = "key_value_store"):
        self.database_url = database_url
        self._metadata = MetaData()
        self.table = Table(
            table_name,
            self._metadata,
            Column("key", String(255), primary_key=True),
            Column("value", Text, nullable=False),
        )
        try:
            self.engine = create_engine(database_url, future=True)
            self._metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to initialize database store: {e}") from e
        logger.debug(f"SQL store ready at {database_url}")

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(self.table.c.value).where(self.table.c.key == key)
                ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read key '{key}': {e}") from e
        if row is None:
            return default
        return json.loads(row[0])

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for key '{key}' is not JSON serializable: {e}") from e
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.table).where(self.table.c.key == key))
                conn.execute(self.table.insert().values(key=key, value=payload))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write key '{key}': {e}") from e

    def remove(self, key: str) -> Any:
        previous = self.get(key)
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.table).where(self.table.c.key == key))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to remove key '{key}': {e}") from e
        return previous

    def contains(self, key: str) -> bool:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(self.table.c.key).where(self.table.c.key == key)
                ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read key '{key}': {e}") from e
        return row is not None

    def keys(self) -> List[str]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(self.table.c.key).order_by(self.table.c.key)).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return [row[0] for row in rows]

    def clear(self) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.table))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to clear store: {e}") from e

    def close(self) -> None:
        self.engine.dispose()
