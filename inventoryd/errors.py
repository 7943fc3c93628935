"""
Exception taxonomy for inventoryd.

Probe failures and unparsable overlay fragments are recovered where they
happen and never show up here. Everything below is surfaced to the caller of
an explicit operation (refresh, reload, read) with its message intact.
"""

from pathlib import Path
from typing import Optional, Union


class InventoryError(Exception):
    """Base class for all inventoryd errors."""


class StoreError(InventoryError):
    """Raised when the persisted report file cannot be written or read."""
    def __init__(self, path: Union[str, Path], message: str):
        self.path = Path(path)
        self.message = message
        super().__init__(f"{message}: {self.path}")


class StoreNotFoundError(StoreError):
    """Raised when the report file does not exist."""
    def __init__(self, path: Union[str, Path]):
        super().__init__(path, "report file not found")


class StoreCorruptError(StoreError):
    """Raised when the report file exists but cannot be decoded."""


class ChecksumMismatchError(StoreCorruptError):
    """Raised when a decoded report does not match its stored checksum."""
    def __init__(self, path: Union[str, Path], expected: str, actual: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(path, "checksum verification failed")


class IdentityError(InventoryError):
    """Raised when the declared identity cannot be loaded, merged or decoded."""
    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self.message = message
        if self.path is not None:
            super().__init__(f"{message}: {self.path}")
        else:
            super().__init__(message)


class ConfigError(InventoryError):
    """Raised when the daemon configuration is invalid."""


class ProbeError(InventoryError):
    """Raised by a section probe that cannot produce its section at all."""
