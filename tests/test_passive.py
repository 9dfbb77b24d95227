"""Tests for discovery/detectors/passive.py - cache and listener lifecycle."""
import threading

import pytest

from discovery.detectors.passive import (
    DiscoveryCache,
    DiscoveryState,
    PassiveDiscoveryDetector,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeListener(PassiveDiscoveryDetector):
    """Passive detector whose 'network' answers on every refresh."""

    name = "fake"
    priority = 70

    def __init__(self, answers=None, fail_start=None, grace_seconds=0.01):
        super().__init__(cache_ttl_seconds=60, grace_seconds=grace_seconds)
        self.answers = dict(answers or {})
        self.fail_start = fail_start
        self.start_calls = 0
        self.stop_calls = 0
        self.refresh_calls = 0

    def _start(self):
        self.start_calls += 1
        if self.fail_start is not None:
            raise self.fail_start

    def _stop(self):
        self.stop_calls += 1

    def _refresh(self):
        self.refresh_calls += 1
        for address, label in self.answers.items():
            self.cache.put(address, label)


class TestDiscoveryCache:
    """Tests for DiscoveryCache."""

    def test_put_and_get(self):
        cache = DiscoveryCache(60)
        assert cache.put("192.168.1.5", "Printer (mDNS)")
        assert cache.get("192.168.1.5") == "Printer (mDNS)"

    def test_put_same_label_reports_unchanged(self):
        cache = DiscoveryCache(60)
        cache.put("192.168.1.5", "Printer (mDNS)")
        assert not cache.put("192.168.1.5", "Printer (mDNS)")

    def test_empty_label_ignored(self):
        cache = DiscoveryCache(60)
        assert not cache.put("192.168.1.5", "")
        assert cache.get("192.168.1.5") is None

    def test_entries_expire_on_read(self):
        clock = FakeClock()
        cache = DiscoveryCache(1800, clock=clock)
        cache.put("192.168.1.5", "TV (UPnP)")
        clock.now += 1799
        assert cache.get("192.168.1.5") == "TV (UPnP)"
        clock.now += 1
        assert cache.get("192.168.1.5") is None
        assert len(cache) == 0

    def test_prefer_longer(self):
        cache = DiscoveryCache(60)
        cache.put("192.168.1.5", "Kitchen - Sonos Speaker (mDNS)", prefer_longer=True)
        assert not cache.put("192.168.1.5", "Kitchen (mDNS)", prefer_longer=True)
        assert cache.get("192.168.1.5") == "Kitchen - Sonos Speaker (mDNS)"

    def test_prefer_longer_replaces_expired(self):
        clock = FakeClock()
        cache = DiscoveryCache(10, clock=clock)
        cache.put("192.168.1.5", "A much longer label (mDNS)", prefer_longer=True)
        clock.now += 11
        assert cache.put("192.168.1.5", "Short (mDNS)", prefer_longer=True)

    def test_claim_once_per_ttl(self):
        clock = FakeClock()
        cache = DiscoveryCache(30, clock=clock)
        assert cache.claim("http://192.168.1.5/desc.xml")
        assert not cache.claim("http://192.168.1.5/desc.xml")
        clock.now += 30
        assert cache.claim("http://192.168.1.5/desc.xml")

    def test_snapshot_skips_expired(self):
        clock = FakeClock()
        cache = DiscoveryCache(10, clock=clock)
        cache.put("192.168.1.1", "old")
        clock.now += 5
        cache.put("192.168.1.2", "new")
        clock.now += 6
        assert cache.snapshot() == {"192.168.1.2": "new"}

    def test_remove_and_clear(self):
        cache = DiscoveryCache(60)
        cache.put("a", "1")
        cache.put("b", "2")
        cache.remove("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0


class TestPassiveDiscoveryDetector:
    """Tests for the listener lifecycle and detect flow."""

    def test_cache_hit_does_not_start_listener(self):
        detector = FakeListener()
        detector.cache.put("192.168.1.7", "Chromecast (mDNS)")
        assert detector.detect("192.168.1.7") == "Chromecast (mDNS)"
        assert detector.state is DiscoveryState.NOT_STARTED
        assert detector.start_calls == 0

    def test_miss_starts_listener_and_waits_for_answer(self):
        detector = FakeListener(answers={"192.168.1.7": "Chromecast (mDNS)"})
        assert detector.detect("192.168.1.7") == "Chromecast (mDNS)"
        assert detector.state is DiscoveryState.LISTENING
        assert detector.refresh_calls == 1

    def test_miss_without_answer(self):
        detector = FakeListener()
        assert detector.detect("192.168.1.8") is None

    def test_start_is_idempotent_across_threads(self):
        detector = FakeListener()
        threads = [threading.Thread(target=detector.start_discovery) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert detector.start_calls == 1

    @pytest.mark.parametrize("error", [
        OSError("multicast not permitted"),
        RuntimeError("can't start new thread"),
        ValueError("bad service type"),
    ])
    def test_start_failure_degrades_to_no_match(self, error):
        detector = FakeListener(fail_start=error)
        assert detector.detect("192.168.1.7") is None
        assert detector.state is DiscoveryState.FAILED
        assert detector.detect("192.168.1.7") is None
        assert detector.start_calls == 1
        assert detector.stop_calls == 1

    def test_cleanup_failure_after_start_failure_is_contained(self):
        class BrokenCleanup(FakeListener):
            def _stop(self):
                super()._stop()
                raise RuntimeError("pool already shut down")

        detector = BrokenCleanup(fail_start=RuntimeError("can't start new thread"))
        assert detector.detect("192.168.1.7") is None
        assert detector.state is DiscoveryState.FAILED
        assert detector.stop_calls == 1

    def test_cancelled_during_grace(self):
        detector = FakeListener(answers={"192.168.1.7": "TV (UPnP)"}, grace_seconds=5)
        cancel = threading.Event()
        cancel.set()
        assert detector.detect("192.168.1.7", cancel) is None

    def test_close(self):
        detector = FakeListener()
        detector.start_discovery()
        detector.close()
        assert detector.state is DiscoveryState.CLOSED
        assert detector.stop_calls == 1
        assert detector.detect("192.168.1.7") is None

    def test_close_before_start(self):
        detector = FakeListener()
        detector.close()
        assert detector.stop_calls == 0
        assert detector.state is DiscoveryState.CLOSED

    @pytest.mark.parametrize("state", [DiscoveryState.FAILED, DiscoveryState.CLOSED])
    def test_no_restart_after_terminal_state(self, state):
        detector = FakeListener()
        detector._state = state
        assert not detector.start_discovery()
        assert detector.start_calls == 0
