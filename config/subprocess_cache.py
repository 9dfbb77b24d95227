"""Subprocess execution with caching and safety features.

The ping probe and the neighbor-table reader are the only callers. Ping is
never cached; neighbor tables change slowly and are cached for a few seconds
so a 254-address sweep does not fork `ip neigh` 254 times.

Security Note:
    All commands are validated against ALLOWED_SUBPROCESS_COMMANDS and
    run with shell=False.

Usage:
    from config.subprocess_cache import safe_run, run_with_fallback

    result = safe_run(['ping', '-c', '1', '192.168.1.1'], timeout=5.0)
    table = run_with_fallback([['ip', 'neigh', 'show'], ['arp', '-an']], ttl=10.0)
"""

# nosec B404 - subprocess usage is required and validated via allowlist
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from config.constants import ALLOWED_SUBPROCESS_COMMANDS, INTERVALS
from config.exceptions import SubprocessError
from config.logging_config import get_logger, log_subprocess_call

logger = get_logger(__name__)


@dataclass
class CachedResult:
    """Cached subprocess result with metadata."""

    result: subprocess.CompletedProcess
    timestamp: float

    def is_expired(self, ttl: float) -> bool:
        """Check if this cached result has expired."""
        return (time.monotonic() - self.timestamp) >= ttl


class SubprocessCache:
    """Thread-safe cache for subprocess.run() results.

    Attributes:
        default_ttl: Default time-to-live for cached results in seconds.
        max_cache_size: Maximum number of cached results to keep.
    """

    def __init__(self, default_ttl: float = 5.0, max_cache_size: int = 50):
        self.default_ttl = default_ttl
        self.max_cache_size = max_cache_size
        self._cache: Dict[Tuple[str, ...], CachedResult] = {}
        self._lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "errors": 0,
        }

    def _evict_oldest(self) -> None:
        """Drop the oldest entries once the cache is over size. Caller holds the lock."""
        if len(self._cache) > self.max_cache_size:
            sorted_items = sorted(self._cache.items(), key=lambda x: x[1].timestamp)
            for key, _ in sorted_items[: len(self._cache) - self.max_cache_size]:
                del self._cache[key]

    def run(
        self,
        cmd: List[str],
        ttl: Optional[float] = None,
        bypass_cache: bool = False,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        """Run a subprocess command with optional caching.

        Only results with returncode 0 are cached.

        Raises:
            SubprocessError: If the command cannot be run or times out.
        """
        ttl = ttl if ttl is not None else self.default_ttl
        timeout = timeout or INTERVALS.SUBPROCESS_TIMEOUT_SECONDS
        key = tuple(cmd)

        if not bypass_cache and ttl > 0:
            with self._lock:
                cached = self._cache.get(key)
                if cached is not None and not cached.is_expired(ttl):
                    self._stats["hits"] += 1
                    return cached.result

        with self._lock:
            self._stats["misses"] += 1
        start_time = time.monotonic()

        try:
            kwargs.setdefault("capture_output", True)
            kwargs.setdefault("text", True)
            kwargs["timeout"] = timeout

            result = subprocess.run(cmd, **kwargs)  # nosec B603 - Commands validated via allowlist
        except subprocess.TimeoutExpired as e:
            with self._lock:
                self._stats["errors"] += 1
            raise SubprocessError(
                f"Command timed out after {timeout}s", command=cmd, details={"timeout": timeout}
            ) from e
        except FileNotFoundError as e:
            with self._lock:
                self._stats["errors"] += 1
            raise SubprocessError(f"Command not found: {cmd[0]}", command=cmd) from e
        except OSError as e:
            with self._lock:
                self._stats["errors"] += 1
            raise SubprocessError(f"Subprocess error: {e}", command=cmd) from e

        duration_ms = (time.monotonic() - start_time) * 1000
        log_subprocess_call(
            logger, cmd, result.returncode, duration_ms, success=(result.returncode == 0)
        )

        if not bypass_cache and ttl > 0 and result.returncode == 0:
            with self._lock:
                self._cache[key] = CachedResult(result=result, timestamp=time.monotonic())
                self._evict_oldest()

        return result

    def invalidate(self, cmd: Optional[List[str]] = None) -> None:
        """Invalidate one cached command, or everything when cmd is None."""
        with self._lock:
            if cmd is None:
                self._cache.clear()
            else:
                self._cache.pop(tuple(cmd), None)

    def get_stats(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
            return {
                **self._stats,
                "cache_size": len(self._cache),
                "hit_rate_percent": round(hit_rate, 1),
            }


# Global cache instance
_global_cache: Optional[SubprocessCache] = None
_global_cache_lock = threading.Lock()


def get_subprocess_cache() -> SubprocessCache:
    """Get or create the global subprocess cache."""
    global _global_cache
    with _global_cache_lock:
        if _global_cache is None:
            _global_cache = SubprocessCache()
        return _global_cache


def _check_allowed(cmd: List[str]) -> None:
    if not cmd:
        raise SubprocessError("Empty command", command=cmd)

    base_cmd = cmd[0]
    if "/" in base_cmd:
        base_cmd = Path(base_cmd).name

    if base_cmd not in ALLOWED_SUBPROCESS_COMMANDS:
        raise SubprocessError(
            f"Command not in allowlist: {base_cmd}",
            command=cmd,
            details={"allowed": sorted(ALLOWED_SUBPROCESS_COMMANDS)},
        )


def safe_run(
    cmd: List[str], timeout: Optional[float] = None, **kwargs
) -> subprocess.CompletedProcess:
    """Run an allow-listed command without caching.

    Raises:
        SubprocessError: If command is not allowed, cannot run, or times out.
    """
    _check_allowed(cmd)
    return get_subprocess_cache().run(cmd, bypass_cache=True, timeout=timeout, **kwargs)


def run_with_fallback(
    commands: List[List[str]], ttl: float = 0, timeout: Optional[float] = None
) -> Optional[subprocess.CompletedProcess]:
    """Try multiple commands in order until one succeeds.

    Used for platform-specific commands, e.g. `ip neigh` on Linux and
    `arp -an` on macOS/BSD.

    Returns:
        Result from first successful command, or None if all fail.
    """
    cache = get_subprocess_cache()
    for cmd in commands:
        try:
            _check_allowed(cmd)
            result = cache.run(cmd, ttl=ttl, bypass_cache=ttl <= 0, timeout=timeout)
            if result.returncode == 0:
                return result
        except SubprocessError as e:
            logger.debug(f"Fallback command failed: {cmd[0]} - {e}")
            continue

    return None
