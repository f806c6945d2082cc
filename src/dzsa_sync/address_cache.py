"""Thread-safe holder for the current external IP address."""

import threading


class AddressCache:
    """Last known external address; empty string means unknown.

    Written by the IP watcher (or seeded once from config in fixed-IP
    mode), read by every endpoint scheduler.
    """

    def __init__(self, address: str = ""):
        self._address = address
        self._lock = threading.Lock()

    def get(self) -> str:
        """Return the last known address, possibly empty."""
        with self._lock:
            return self._address

    def set(self, address: str) -> str:
        """Overwrite the address.

        Returns:
            The previous value, so callers can detect a change.
        """
        with self._lock:
            previous = self._address
            self._address = address
            return previous
