import os
import threading
from typing import Any, Dict, List, Mapping, Optional


def walk_path(container: Any, path: str) -> Any:
    """Follow a dot path through dicts and lists; None when it leaves containers."""
    if not path:
        return None
    current = container
    for key in str(path).split("."):
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list):
            try:
                current = current[int(key)]
            except (ValueError, IndexError):
                return None
        else:
            return None
    return current


def _assign(container: Dict[str, Any], path: str, value: Any) -> None:
    """Set a dot path on a dict, creating intermediate dicts."""
    keys = str(path).split(".")
    current = container
    for key in keys[:-1]:
        nxt = current.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            current[key] = nxt
        current = nxt
    current[keys[-1]] = value


class ScopeStore:
    """Thread-safe key/value store for flow- or global-scoped state.

    Keys are dot paths; ``set("stats.last", 3)`` creates ``{"stats": {"last": 3}}``.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, path: str) -> Any:
        with self._lock:
            return walk_path(self._data, path)

    def set(self, path: str, value: Any) -> None:
        with self._lock:
            _assign(self._data, path, value)

    def has(self, path: str) -> bool:
        return self.get(path) is not None

    def list_names(self) -> List[str]:
        with self._lock:
            return list(self._data.keys())

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class RunContext:
    """Everything a run can read from or write to outside the database.

    Holds the triggering message, the flow and global scope stores and the
    environment used for ``env`` lookups.
    """

    def __init__(
        self,
        message: Optional[Dict[str, Any]] = None,
        flow: Optional[ScopeStore] = None,
        global_store: Optional[ScopeStore] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.message: Dict[str, Any] = message if message is not None else {}
        self.flow = flow if flow is not None else ScopeStore()
        self.global_store = global_store if global_store is not None else ScopeStore()
        self.env = env if env is not None else os.environ

    def get_message_property(self, path: str) -> Any:
        return walk_path(self.message, path)

    def set_message_property(self, path: str, value: Any) -> None:
        _assign(self.message, path, value)
