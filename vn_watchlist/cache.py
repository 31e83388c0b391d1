from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass
class TTLCache(Generic[T]):
    ttl_seconds: float
    clock: Callable[[], float] = time.monotonic
    _entries: Dict[str, Tuple[float, T]] = field(default_factory=dict, init=False)

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self.clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = (self.clock(), value)

    def get_or_load(self, key: str, loader: Callable[[], T]) -> T:
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
