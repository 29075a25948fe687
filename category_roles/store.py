import abc
import json
import logging
import os
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)


def split_path(path: str) -> List[str]:
    parts = [p for p in str(path).split(".") if p]
    if not parts:
        raise ValueError("Empty storage path")
    return parts


def join_path(*segments: Any) -> str:
    return ".".join(str(s) for s in segments)


class PersistentStore(abc.ABC):
    """Hierarchical string-keyed store addressed by dot-joined paths."""

    @abc.abstractmethod
    async def init(self) -> None: ...

    @abc.abstractmethod
    async def get(self, path: str) -> Any: ...

    @abc.abstractmethod
    async def set(self, path: str, value: Any) -> None: ...

    @abc.abstractmethod
    async def remove(self, path: str) -> None: ...

    @abc.abstractmethod
    async def exists(self, path: str) -> bool: ...

    @abc.abstractmethod
    async def keys(self) -> List[str]: ...


class NestedDictStore(PersistentStore):
    """Path semantics over a nested dict. Subclasses decide how to persist it."""

    def __init__(self):
        self.data: Dict[str, Any] = {}

    def _flush(self) -> None:
        pass

    async def init(self) -> None:
        pass

    def _lookup(self, parts: List[str]) -> Optional[Any]:
        node: Any = self.data
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    async def get(self, path: str) -> Any:
        return self._lookup(split_path(path))

    async def set(self, path: str, value: Any) -> None:
        parts = split_path(path)
        node = self.data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
        self._flush()

    async def remove(self, path: str) -> None:
        parts = split_path(path)
        trail = [self.data]
        for part in parts[:-1]:
            child = trail[-1].get(part)
            if not isinstance(child, dict):
                return
            trail.append(child)
        if parts[-1] not in trail[-1]:
            return
        del trail[-1][parts[-1]]

        # prune parents left empty
        for depth in range(len(parts) - 1, 0, -1):
            if trail[depth]:
                break
            del trail[depth - 1][parts[depth - 1]]
        self._flush()

    async def exists(self, path: str) -> bool:
        return self._lookup(split_path(path)) is not None

    async def keys(self) -> List[str]:
        return list(self.data.keys())


# =========================================================
# PERSISTENCE
# =========================================================
class JsonStore(NestedDictStore):
    def __init__(self, data_file: str):
        super().__init__()
        self.data_file = data_file

    async def init(self) -> None:
        # Ensure directory exists if data_file has a folder (e.g. /app/data/...)
        data_dir = os.path.dirname(self.data_file)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

        if not os.path.exists(self.data_file):
            self.data = {}
            return
        with open(self.data_file, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError(f"{self.data_file} does not hold a JSON object")
        self.data = loaded
        log.info("Loaded %d guild(s) from %s", len(self.data), os.path.abspath(self.data_file))

    def _flush(self) -> None:
        data_dir = os.path.dirname(self.data_file)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

        with open(self.data_file, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2, ensure_ascii=False)
