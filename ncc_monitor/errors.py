"""Error types raised by the monitoring pipeline."""


class MonitorError(RuntimeError):
    """Base class for pipeline errors."""
    pass


class NotFoundError(MonitorError):
    """Raised when a serial or detection does not exist or is not owned by the caller."""
    pass


class ValidationError(MonitorError):
    """Raised on malformed input before any state is written."""
    pass


class SearchUnavailableError(MonitorError):
    """Raised when the search backend fails (timeout, transport, HTTP, quota)."""
    pass


class PersistenceError(MonitorError):
    """Raised when a storage read or write fails."""
    pass


class DuplicateDetectionError(PersistenceError):
    """Raised when a (serial, source URL) detection already exists."""

    def __init__(self, serial_id: int, source_url: str):
        super().__init__(f"Detection already exists for serial {serial_id}: {source_url}")
        self.serial_id = serial_id
        self.source_url = source_url


class NotificationError(MonitorError):
    """Raised when a notification cannot be delivered."""
    pass


class ScanInProgressError(MonitorError):
    """Raised when another scan holds the lock for the same serial."""

    def __init__(self, serial_id: int):
        super().__init__(f"Scan already in progress for serial {serial_id}")
        self.serial_id = serial_id
