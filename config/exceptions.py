"""Custom exception hierarchy for netsweep.

Only configuration problems and unrecoverable scheduler failures ever
reach a caller. Probe failures are absorbed where they happen.
"""

from typing import Optional


class NetSweepError(Exception):
    """Base exception for all netsweep errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(NetSweepError):
    """Settings and configuration errors.

    Raised before any probing starts when:
    - The local subnet cannot be resolved in "auto" mode
    - The address range is invalid
    - A port/label table is malformed
    - A numeric limit is out of range

    Examples:
        >>> raise ConfigurationError("No active IPv4 interface", {"subnet_base": "auto"})
    """

    pass


class DetectorError(NetSweepError):
    """Detector lifecycle errors.

    Raised internally when a passive detector cannot open its sockets.
    The detector catches it and degrades to returning no match.
    """

    def __init__(self, message: str, detector: Optional[str] = None,
                 details: Optional[dict] = None):
        details = details or {}
        if detector:
            details["detector"] = detector
        super().__init__(message, details)
        self.detector = detector


class SubprocessError(NetSweepError):
    """Subprocess execution errors.

    Attributes:
        command: The command that failed.
        returncode: Exit code if available.
        stdout: Standard output if available.
        stderr: Standard error if available.

    Examples:
        >>> raise SubprocessError(
        ...     "Command failed",
        ...     details={"command": ["ping", "-c", "1", "192.168.1.1"], "returncode": 1}
        ... )
    """

    def __init__(
        self,
        message: str,
        command: Optional[list] = None,
        returncode: Optional[int] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        details = details or {}
        if command:
            details["command"] = command
        if returncode is not None:
            details["returncode"] = returncode
        if stdout:
            details["stdout"] = stdout[:500]  # Truncate long output
        if stderr:
            details["stderr"] = stderr[:500]

        super().__init__(message, details)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
