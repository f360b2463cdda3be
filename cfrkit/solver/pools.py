"""
Reusable scratch buffers for the recursive traversal hot path.

Every player node needs a few per-call float vectors and every run needs a
scratch key->index table. Recycling them avoids an allocation per node.
Buffers are float32 views over recycled backing arrays; a released
backing array is handed out again for any request that fits in it.

Callers must release exactly what they allocate. The scratch() context
managers do that on every exit path.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

import numpy as np


def _backing(buf: np.ndarray) -> np.ndarray:
    return buf.base if buf.base is not None else buf


def capacity(buf: np.ndarray) -> int:
    """Get the length of the backing array behind a pooled buffer."""
    return len(_backing(buf))


class FloatSlicePool:
    """Free list of float32 scratch buffers. Not thread-safe."""

    def __init__(self):
        self.pool: list[np.ndarray] = []

    def alloc(self, n: int) -> np.ndarray:
        """
        Get a zeroed float32 buffer of length n.

        Returns:
            A view of length n over a recycled (or new) backing array
        """
        backing = self._pop()
        if backing is None or len(backing) < n:
            backing = np.zeros(n, dtype=np.float32)
        buf = backing[:n]
        buf.fill(0)
        return buf

    def free(self, buf: np.ndarray) -> None:
        """Return a buffer obtained from alloc() to the pool."""
        backing = _backing(buf)
        if len(backing) > 0:
            self._push(backing)

    @contextmanager
    def scratch(self, n: int) -> Iterator[np.ndarray]:
        """Borrow a zeroed buffer for the duration of a with-block."""
        buf = self.alloc(n)
        try:
            yield buf
        finally:
            self.free(buf)

    def __len__(self) -> int:
        return len(self.pool)

    def _pop(self):
        if self.pool:
            return self.pool.pop()
        return None

    def _push(self, backing: np.ndarray) -> None:
        self.pool.append(backing)


class ThreadSafeFloatSlicePool(FloatSlicePool):
    """FloatSlicePool whose free list is guarded by a single lock."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()

    def _pop(self):
        with self._lock:
            if self.pool:
                return self.pool.pop()
        return None

    def _push(self, backing: np.ndarray) -> None:
        with self._lock:
            self.pool.append(backing)


class KeyIntMapPool:
    """Free list of scratch key->index dicts. Not thread-safe."""

    def __init__(self):
        self.pool: list[dict[bytes, int]] = []

    def alloc(self) -> dict[bytes, int]:
        """Get an empty dict, reusing a released one if available."""
        m = self._pop()
        return m if m is not None else {}

    def free(self, m: dict[bytes, int]) -> None:
        """Clear a dict obtained from alloc() and return it to the pool."""
        m.clear()
        self._push(m)

    @contextmanager
    def scratch(self) -> Iterator[dict[bytes, int]]:
        """Borrow an empty dict for the duration of a with-block."""
        m = self.alloc()
        try:
            yield m
        finally:
            self.free(m)

    def __len__(self) -> int:
        return len(self.pool)

    def _pop(self):
        if self.pool:
            return self.pool.pop()
        return None

    def _push(self, m: dict[bytes, int]) -> None:
        self.pool.append(m)


class ThreadSafeKeyIntMapPool(KeyIntMapPool):
    """KeyIntMapPool whose free list is guarded by a single lock."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()

    def _pop(self):
        with self._lock:
            if self.pool:
                return self.pool.pop()
        return None

    def _push(self, m: dict[bytes, int]) -> None:
        with self._lock:
            self.pool.append(m)
