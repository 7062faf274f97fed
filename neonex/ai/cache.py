"""A size-bounded, expiring cache of inference results."""

from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from neonex.ai.model import InferenceInput, InferenceOutput


@dataclass
class _Entry:
    output: InferenceOutput
    expires_at: float


class InferenceCache:
    """Caches inference outputs keyed by model, data and parameters.

    ``ttl`` and ``cleanup_interval`` are in seconds; a ``cleanup_interval`` of
    None disables the background sweep of expired entries.
    """

    def __init__(
        self,
        max_size: int,
        ttl: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float | None = 60.0,
    ) -> None:
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._stop = threading.Event()
        if cleanup_interval is not None:
            threading.Thread(
                target=self._cleanup_loop,
                args=(cleanup_interval,),
                name="inference-cache-cleanup",
                daemon=True,
            ).start()

    @staticmethod
    def _key(inference_input: InferenceInput) -> str:
        payload = {
            "model_id": inference_input.model_id,
            "data": inference_input.data,
            "parameters": inference_input.parameters,
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=repr)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    def get(self, inference_input: InferenceInput) -> InferenceOutput | None:
        """Return the cached output, or None on a miss or an expired entry."""
        key = self._key(inference_input)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() > entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.output

    def set(self, inference_input: InferenceInput, output: InferenceOutput) -> None:
        key = self._key(inference_input)
        with self._lock:
            if len(self._entries) >= self.max_size:
                self._evict_oldest()
            self._entries[key] = _Entry(output, self._clock() + self.ttl)

    def clear(self) -> None:
        """Drop every entry; the hit and miss counters are kept."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
                "evictions": self._evictions,
            }

    def cleanup(self) -> None:
        """Remove every expired entry."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
            for key in expired:
                del self._entries[key]

    def close(self) -> None:
        """Stop the background cleanup."""
        self._stop.set()

    def _evict_oldest(self) -> None:
        if not self._entries:
            return
        oldest = min(self._entries, key=lambda key: self._entries[key].expires_at)
        del self._entries[oldest]
        self._evictions += 1

    def _cleanup_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self.cleanup()