"""Shared machinery for multicast listeners that classify from announcements.

Passive detectors do not contact the target address. They keep a background
listener that fills an address -> label cache, and ``detect`` reads from that
cache, waiting a short grace period after a miss so fresh responses can land.
"""
import threading
import time
from abc import abstractmethod
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from config import INTERVALS, get_logger
from discovery.detectors.base import DeviceTypeDetector, is_cancelled

logger = get_logger(__name__)


class DiscoveryState(Enum):
    NOT_STARTED = "not_started"
    LISTENING = "listening"
    FAILED = "failed"
    CLOSED = "closed"


class DiscoveryCache:
    """Thread-safe key -> (label, timestamp) store with expiry on read.

    Attributes:
        ttl_seconds: Age after which an entry is treated as absent.
    """

    def __init__(self, ttl_seconds: float = INTERVALS.PASSIVE_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _fresh(self, key: str) -> Optional[str]:
        """Caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        label, stamp = entry
        if self._clock() - stamp >= self.ttl_seconds:
            del self._entries[key]
            return None
        return label

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._fresh(key)

    def put(self, key: str, label: str, prefer_longer: bool = False) -> bool:
        """Store a label.

        With prefer_longer, an existing fresh label is only replaced by a
        longer one.

        Returns:
            True if the stored label changed.
        """
        if not label:
            return False
        with self._lock:
            current = self._fresh(key)
            if current is not None and prefer_longer and len(label) <= len(current):
                return False
            self._entries[key] = (label, self._clock())
            return current != label

    def claim(self, key: str, value: str = "") -> bool:
        """Atomically insert key if it is absent or expired.

        Returns:
            True if this caller inserted it.
        """
        with self._lock:
            if self._fresh(key) is not None:
                return False
            self._entries[key] = (value or key, self._clock())
            return True

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def snapshot(self) -> Dict[str, str]:
        """Fresh entries as a plain dict."""
        with self._lock:
            result = {}
            for key in list(self._entries):
                label = self._fresh(key)
                if label is not None:
                    result[key] = label
            return result


class PassiveDiscoveryDetector(DeviceTypeDetector):
    """Base for detectors backed by a multicast listener.

    Subclasses implement ``_start`` (open sockets, spawn threads) and
    ``_stop``. Any exception from ``_start`` disables the detector for good.
    ``_refresh`` runs before the grace wait on a cache miss.
    """

    def __init__(self, cache_ttl_seconds: float = INTERVALS.PASSIVE_CACHE_TTL_SECONDS,
                 grace_seconds: float = 0.0):
        self.cache = DiscoveryCache(cache_ttl_seconds)
        self.grace_seconds = grace_seconds
        self._state = DiscoveryState.NOT_STARTED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()

    @property
    def state(self) -> DiscoveryState:
        return self._state

    @abstractmethod
    def _start(self) -> None:
        """Open sockets and start background listeners."""

    @abstractmethod
    def _stop(self) -> None:
        """Stop listeners and release sockets."""

    def _refresh(self) -> None:
        """Ask the network again. Default does nothing."""

    def start_discovery(self) -> bool:
        """Start listening once. Safe to call from many threads.

        Returns:
            True if the detector is listening.
        """
        with self._state_lock:
            if self._state is not DiscoveryState.NOT_STARTED:
                return self._state is DiscoveryState.LISTENING
            try:
                self._start()
            except Exception as e:
                self._state = DiscoveryState.FAILED
                logger.warning(f"{self.name} discovery unavailable, detector disabled: {e}")
                self._stop_quietly()
                return False
            self._state = DiscoveryState.LISTENING
            logger.info(f"{self.name} discovery listening")
            return True

    def _stop_quietly(self) -> None:
        self._stop_event.set()
        try:
            self._stop()
        except Exception as e:
            logger.debug(f"{self.name} cleanup failed: {e}")

    def detect(self, address: str,
               cancel_event: Optional[threading.Event] = None) -> Optional[str]:
        try:
            label = self.cache.get(address)
            if label:
                logger.debug(f"{self.name} cache hit for {address}: {label}")
                return label

            if not self.start_discovery():
                return None

            self._refresh()
            if self.grace_seconds > 0:
                waiter = cancel_event if cancel_event is not None else self._stop_event
                waiter.wait(self.grace_seconds)
            if is_cancelled(cancel_event):
                return None

            return self.cache.get(address)
        except Exception as e:
            logger.debug(f"{self.name} detection failed for {address}: {e}")
            return None

    def close(self) -> None:
        with self._state_lock:
            if self._state is DiscoveryState.LISTENING:
                self._stop_quietly()
                logger.debug(f"{self.name} discovery stopped")
            self._state = DiscoveryState.CLOSED
