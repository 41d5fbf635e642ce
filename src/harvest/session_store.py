"""
Persistent key-value storage for session state between runs.

Keeps the cookie jar, user agent and build identifier alive across runs so a
new run does not have to re-earn its identity from scratch.

Usage:
    from harvest.session_store import JsonFileStore

    store = JsonFileStore(storage_dir="~/.harvest/state")
    persisted = store.get("VITALS_STATE_V1")
    ...
    store.put("VITALS_STATE_V1", state.to_dict())
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from harvest.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class JsonFileStore:
    """
    Stores one JSON document per key in a directory.

    Features:
    - Atomic writes (temp file + rename)
    - Unreadable entries are reported as missing, never raised
    - Key sanitization for filenames
    """

    def __init__(self, storage_dir: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            storage_dir: Directory to store entries (default: ~/.harvest/state)

        Raises:
            StoreUnavailableError: If the directory cannot be created
        """
        self.storage_dir = Path(storage_dir or Path.home() / ".harvest" / "state").expanduser()
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot open state store at {self.storage_dir}: {e}") from e

        logger.debug(f"JsonFileStore initialized with storage at {self.storage_dir}")

    def _get_path(self, key: str) -> Path:
        """Get file path for a key."""
        safe_key = key.replace(":", "_").replace("/", "_").replace(".", "_")
        return self.storage_dir / f"{safe_key}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Read the value stored under key, or None."""
        path = self._get_path(key)
        if not path.exists():
            logger.debug(f"No stored value for {key}")
            return None

        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read stored value for {key}: {e}")
            return None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        """Write value under key, replacing any previous value."""
        path = self._get_path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.storage_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Stored value for {key}")

    def delete(self, key: str) -> bool:
        """Delete a stored value."""
        path = self._get_path(key)
        if path.exists():
            path.unlink()
            logger.info(f"Stored value deleted for {key}")
            return True
        return False


class MemoryStore:
    """In-process store with the same interface, for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = dict(initial or {})

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get(key)
        return json.loads(json.dumps(value)) if value is not None else None

    def put(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = json.loads(json.dumps(value))
