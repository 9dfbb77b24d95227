"""Priority-ordered detector chain."""
import threading
from typing import Iterable, List, Optional

from config import get_logger
from discovery.detectors.base import DeviceTypeDetector, is_cancelled

logger = get_logger(__name__)


class DetectorChain:
    """Runs detectors highest priority first and stops at the first label.

    Detectors with equal priority run in registration order.
    """

    def __init__(self, detectors: Iterable[DeviceTypeDetector] = ()):
        self._lock = threading.Lock()
        self._detectors: List[DeviceTypeDetector] = []
        for detector in detectors:
            self.register(detector)

    def register(self, detector: DeviceTypeDetector) -> None:
        with self._lock:
            # sorted() is stable, so ties keep registration order
            self._detectors = sorted(
                self._detectors + [detector], key=lambda d: -d.priority
            )
        logger.debug(f"Registered detector {detector.name} (priority {detector.priority})")

    @property
    def detectors(self) -> List[DeviceTypeDetector]:
        with self._lock:
            return list(self._detectors)

    def classify(self, address: str,
                 cancel_event: Optional[threading.Event] = None) -> Optional[str]:
        """Return the first non-empty label, or None.

        Lower-priority detectors do not run once one has matched. A detector
        that raises is skipped.
        """
        for detector in self.detectors:
            if is_cancelled(cancel_event):
                return None
            try:
                label = detector.detect(address, cancel_event)
            except Exception as e:
                logger.debug(f"Detector {detector.name} failed for {address}: {e}")
                continue
            if label:
                logger.debug(f"{address} classified by {detector.name}: {label}")
                return label
        return None

    def close(self) -> None:
        for detector in self.detectors:
            try:
                detector.close()
            except Exception as e:
                logger.warning(f"Error closing detector {detector.name}: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._detectors)
