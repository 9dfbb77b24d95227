"""Network scanner - sweeps a subnet, classifies responders, tracks devices.

A sweep pings every address in the configured range on a bounded worker
pool. Addresses that answer are run through the detector chain and
upserted into the device table; known addresses that stay silent are
marked offline. A background loop repeats the sweep every
``scan_interval_minutes`` and can be paused and resumed.

Events are published on the EventBus outside of any lock:
    DEVICE_DISCOVERED        {"device": NetworkDevice}
    SCAN_PROGRESS            {"message": str}
    SCANNING_STATE_CHANGED   {"is_scanning": bool}
    NEXT_SCAN_TIME_CHANGED   {"next_scan_time": datetime | None}
    LAST_SCAN_TIME_CHANGED   {"last_scan_time": datetime | None}
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from config import INTERVALS, ConfigurationError, LogContext, get_logger
from app.events import EventType
from discovery.classifier import DetectorChain
from discovery.device_table import DeviceTable
from discovery.models import NetworkDevice, placeholder_name
from discovery.ping import PingProbe, PingResult
from discovery.subnet import AddressRange, LocalSubnetProvider, is_valid_ipv4
from storage.settings import ScannerOptions

logger = get_logger(__name__)


class NetworkScanner:
    """Discovers and classifies devices on the local network.

    All collaborators are injectable; defaults probe the real network.

    Args:
        options: Sweep range, timing and concurrency settings.
        chain: Detector chain used to classify responders.
        event_bus: Receives scanner events. None disables publishing.
        subnet_provider: Resolves "auto" to concrete subnet bases.
        ping_probe: Reachability check.
        hostname_resolver: ``resolve(address) -> Optional[str]``.
        mac_resolver: ``resolve(address) -> Optional[str]``.
    """

    def __init__(self, options: Optional[ScannerOptions] = None,
                 chain: Optional[DetectorChain] = None,
                 event_bus=None,
                 subnet_provider=None,
                 ping_probe=None,
                 hostname_resolver=None,
                 mac_resolver=None):
        self.options = options or ScannerOptions()
        self.chain = chain or DetectorChain()
        self.subnet_provider = subnet_provider or LocalSubnetProvider()
        self.ping_probe = ping_probe or PingProbe()
        self.hostname_resolver = hostname_resolver
        self.mac_resolver = mac_resolver
        self._event_bus = event_bus

        self._table = DeviceTable()

        # One sweep at a time; a second request returns the current snapshot
        self._sweep_lock = threading.Lock()
        self._sweep_cancel = threading.Event()
        self._is_scanning = False

        # Background loop
        self._state_lock = threading.Lock()
        self._running = False
        self._paused = False
        self._loop_thread: Optional[threading.Thread] = None
        self._wake = threading.Event()
        self._stop_event = threading.Event()

        self._last_scan_time: Optional[datetime] = None
        self._next_scan_time: Optional[datetime] = None

    # === Properties ===

    @property
    def is_scanning(self) -> bool:
        """True while a sweep is in progress."""
        return self._is_scanning

    @property
    def is_running(self) -> bool:
        """True when background scanning is started and not paused."""
        return self._running and not self._paused

    @property
    def is_paused(self) -> bool:
        return self._running and self._paused

    @property
    def last_scan_time(self) -> Optional[datetime]:
        return self._last_scan_time

    @property
    def next_scan_time(self) -> Optional[datetime]:
        return self._next_scan_time

    @property
    def discovered_devices(self) -> List[NetworkDevice]:
        """Snapshot copy of the device table."""
        return self._table.snapshot()

    def get_device(self, address: str) -> Optional[NetworkDevice]:
        return self._table.get(address)

    def get_online_devices(self) -> List[NetworkDevice]:
        return [d for d in self._table.snapshot() if d.is_online]

    def get_device_count(self) -> Tuple[int, int]:
        """Get (online_count, total_count)."""
        return self._table.counts()

    def remove_device(self, address: str) -> bool:
        return self._table.remove(address)

    def clear_devices(self) -> None:
        self._table.clear()

    # === Events ===

    def _publish(self, event_type: EventType, data: dict) -> None:
        if self._event_bus is None:
            return
        try:
            self._event_bus.publish(event_type, data, source="scanner")
        except Exception as e:
            logger.error(f"Failed to publish {event_type.name}: {e}")

    def _progress(self, message: str) -> None:
        self._publish(EventType.SCAN_PROGRESS, {"message": message})

    def _set_scanning(self, scanning: bool) -> None:
        self._is_scanning = scanning
        self._publish(EventType.SCANNING_STATE_CHANGED, {"is_scanning": scanning})

    def _set_next_scan_time(self, value: Optional[datetime]) -> None:
        self._next_scan_time = value
        self._publish(EventType.NEXT_SCAN_TIME_CHANGED, {"next_scan_time": value})

    def _device_changed(self, device: NetworkDevice) -> None:
        self._publish(EventType.DEVICE_DISCOVERED, {"device": device})

    # === Sweeps ===

    def _resolve_ranges(self) -> List[AddressRange]:
        """Validate settings and build the address ranges to sweep.

        Raises:
            ConfigurationError: Invalid options or no usable subnet.
        """
        self.options.validate()
        subnets = self.subnet_provider.get_subnets(self.options.subnet_base)
        if not subnets:
            raise ConfigurationError(
                "Could not determine network to scan",
                {"subnet_base": self.options.subnet_base}
            )
        return [
            AddressRange(base, self.options.start_ip, self.options.end_ip)
            for base in subnets
        ]

    def scan_network(self) -> List[NetworkDevice]:
        """Sweep the configured range once.

        Returns:
            Snapshot of every known device after the sweep.

        Raises:
            ConfigurationError: Before any probing, if the options or the
                local subnet are unusable.
        """
        return self._scan(background=False)

    def _scan(self, background: bool) -> List[NetworkDevice]:
        ranges = self._resolve_ranges()

        if not self._sweep_lock.acquire(blocking=False):
            logger.info("Scan already in progress - returning current snapshot")
            return self._table.snapshot()

        cancel = threading.Event()
        with self._state_lock:
            # A pause or stop that landed before this sweep started still applies
            if background and (self._paused or self._stop_event.is_set()):
                cancel.set()
            self._sweep_cancel = cancel
        self._set_scanning(True)
        try:
            self._progress("Starting network scan...")
            with LogContext(logger, "Network sweep", logging.INFO):
                for address_range in ranges:
                    if cancel.is_set():
                        break
                    logger.info(f"Scanning network: {address_range!r}")
                    self._progress(f"Scanning network {address_range.subnet_base}.x...")
                    self._sweep(address_range, cancel)

            if cancel.is_set():
                logger.info("Scan cancelled - results so far are kept")
                self._progress("Scan cancelled")
            else:
                self._last_scan_time = datetime.now()
                self._publish(EventType.LAST_SCAN_TIME_CHANGED,
                              {"last_scan_time": self._last_scan_time})

            online, total = self._table.counts()
            logger.info(
                f"Network scan completed. Online: {online}, "
                f"Offline: {total - online}, Total: {total}"
            )
            self._progress(f"Scan complete - found {online} online devices, {total - online} offline")
        finally:
            self._set_scanning(False)
            self._sweep_lock.release()

        return self._table.snapshot()

    def _sweep(self, addresses: Iterable[str], cancel: threading.Event) -> None:
        """Probe addresses on a pool of max_concurrent_connections workers.

        After every devices_before_throttle submissions, submission pauses
        for network_throttle_delay_ms.
        """
        throttle_every = self.options.devices_before_throttle
        throttle_delay = self.options.network_throttle_delay_ms / 1000

        with ThreadPoolExecutor(max_workers=self.options.max_concurrent_connections,
                                thread_name_prefix="sweep") as pool:
            futures = []
            for index, address in enumerate(addresses, start=1):
                if cancel.is_set():
                    logger.info("Scan cancelled mid-process - no further addresses queued")
                    break
                futures.append(pool.submit(self._process_address, address, cancel))
                if throttle_delay > 0 and index % throttle_every == 0:
                    cancel.wait(throttle_delay)

            for future in futures:
                future.result()

    def _process_address(self, address: str, cancel: threading.Event) -> None:
        """Ping, classify and record one address. Never raises."""
        if cancel.is_set():
            return
        try:
            result = self.ping_probe.probe(address, self.options.ping_timeout_ms)
            if result.reachable:
                self._record_online(address, result, cancel)
            else:
                self._record_offline(address)
        except Exception as e:
            logger.debug(f"Error processing device {address}: {e}")
            self._record_offline(address)
        self._progress(f"Scanned {address}")

    def _record_online(self, address: str, result: PingResult,
                       cancel: threading.Event) -> NetworkDevice:
        logger.debug(f"Host {address} is reachable (RTT: {result.rtt_ms}ms)")
        label = self.chain.classify(address, cancel)

        name = self._resolve_with(self.hostname_resolver, address)
        if not name:
            existing = self._table.get(address)
            if existing is None or not existing.name:
                name = placeholder_name(address)
        mac = self._resolve_with(self.mac_resolver, address)

        device, changed = self._table.upsert_online(
            address, result.rtt_ms, type_label=label, name=name, mac_address=mac
        )
        if changed:
            logger.info(f"Device online: {device.name} ({address}) - {device.type or 'unclassified'}")
            self._device_changed(device)
        return device

    def _record_offline(self, address: str) -> None:
        device = self._table.mark_offline(address)
        if device is not None:
            logger.info(f"Device went offline: {device.name} ({address})")
            self._device_changed(device)

    @staticmethod
    def _resolve_with(resolver, address: str) -> Optional[str]:
        if resolver is None:
            return None
        try:
            return resolver.resolve(address)
        except Exception as e:
            logger.debug(f"{type(resolver).__name__} failed for {address}: {e}")
            return None

    def scan_single_device(self, address: str) -> List[NetworkDevice]:
        """Run the sweep pipeline for one address.

        The device is recorded even if it does not answer.

        Returns:
            A one-element list, or [] if the address is not valid IPv4.
        """
        logger.info(f"Scanning single device at {address}")
        self._progress(f"Scanning device at {address}...")

        if not is_valid_ipv4(address):
            logger.warning(f"Only IPv4 addresses are supported: {address}")
            self._progress("Error: Invalid IPv4 address")
            return []

        cancel = threading.Event()
        try:
            result = self.ping_probe.probe(address, self.options.ping_timeout_ms)
            if result.reachable:
                device = self._record_online(address, result, cancel)
            else:
                name = self._resolve_with(self.hostname_resolver, address) or placeholder_name(address)
                device, changed = self._table.upsert_offline(address, name=name)
                if changed:
                    self._device_changed(device)
        except Exception as e:
            logger.error(f"Error during single device scan for {address}: {e}", exc_info=True)
            self._progress(f"Scan error: {e}")
            return []

        self._progress(f"Scan complete - {'Device found' if device.is_online else 'No device found'}")
        return [device]

    # === Background scanning ===

    def start_scanning(self) -> None:
        """Start periodic sweeps on a background thread."""
        with self._state_lock:
            if self._running and not self._paused:
                return
            self._running = True
            self._paused = False

        logger.info("Starting continuous scanning")
        if not self.options.enable_continuous_scanning:
            logger.info("Continuous scanning disabled - sweeps run only when requested")
            return
        self._ensure_loop()

    def pause_scanning(self) -> None:
        """Stop scheduling sweeps and cancel in-flight probes.

        A sweep in progress finishes with what it has already recorded.
        """
        with self._state_lock:
            if not self._running or self._paused:
                return
            self._paused = True
            self._next_scan_time = None
            self._sweep_cancel.set()

        logger.info("Pausing continuous scanning")
        if self._is_scanning:
            logger.info("Scan is currently running - in-flight probes are being cancelled")
        self._publish(EventType.NEXT_SCAN_TIME_CHANGED, {"next_scan_time": None})
        self._wake.set()

    def resume_scanning(self) -> None:
        """Resume after a pause; sweeps immediately."""
        with self._state_lock:
            if self._running and not self._paused:
                return
            self._running = True
            self._paused = False

        logger.info("Resuming continuous scanning")
        if self.options.enable_continuous_scanning:
            self._ensure_loop()

    def stop_scanning(self) -> None:
        """Stop the background loop and wait for it to exit."""
        with self._state_lock:
            was_running = self._running
            self._running = False
            self._paused = False
            thread = self._loop_thread
            self._loop_thread = None
            self._stop_event.set()
            self._sweep_cancel.set()

        self._wake.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=INTERVALS.SCHEDULER_JOIN_SECONDS)
            if thread.is_alive():
                logger.warning("Scanner loop did not exit in time")
        if was_running:
            logger.info("Continuous scanning stopped")
            self._set_next_scan_time(None)

    def _ensure_loop(self) -> None:
        with self._state_lock:
            if self._loop_thread is not None and self._loop_thread.is_alive():
                self._wake.set()
                return
            self._stop_event.clear()
            self._wake.clear()
            self._loop_thread = threading.Thread(
                target=self._run_loop, daemon=True, name="NetworkScanner-Loop"
            )
            self._loop_thread.start()

    def _run_loop(self) -> None:
        logger.debug("Scanner loop started")
        while not self._stop_event.is_set():
            if self._paused:
                self._wake.wait()
                self._wake.clear()
                continue

            try:
                self._scan(background=True)
                delay = self.options.scan_interval_minutes * 60
            except ConfigurationError as e:
                logger.error(f"Scan configuration error, retrying in "
                             f"{INTERVALS.SCHEDULER_RETRY_SECONDS:.0f}s: {e}")
                self._progress(f"Error: {e.message}")
                delay = INTERVALS.SCHEDULER_RETRY_SECONDS
            except Exception as e:
                logger.error(f"Background scan failed: {e}", exc_info=True)
                self._progress(f"Scan error: {e}")
                delay = INTERVALS.SCHEDULER_RETRY_SECONDS

            with self._state_lock:
                if self._stop_event.is_set() or self._paused:
                    continue
                next_scan_time = datetime.now() + timedelta(seconds=delay)
                self._next_scan_time = next_scan_time
            self._publish(EventType.NEXT_SCAN_TIME_CHANGED, {"next_scan_time": next_scan_time})
            self._wake.wait(delay)
            self._wake.clear()

        logger.debug("Scanner loop exited")

    # === Lifecycle ===

    def close(self) -> None:
        """Stop background scanning and release detector resources."""
        self.stop_scanning()
        self.chain.close()
        closer = getattr(self.hostname_resolver, 'close', None)
        if callable(closer):
            closer()

    def __enter__(self) -> 'NetworkScanner':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
