"""
Crash-safe single-file store for the latest IntegrityEnvelope.

Writes go to a ``<name>.tmp`` sibling in the same directory, are flushed and
fsynced, then renamed over the target with ``os.replace``. A crash at any
point leaves either the previous complete file or the new complete file on
disk, never a partial one.

Reads decode the file and verify the checksum; a file that fails verification
is reported as corrupt and never handed back to the caller.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from .envelope import IntegrityEnvelope
from .errors import (
    ChecksumMismatchError,
    StoreCorruptError,
    StoreError,
    StoreNotFoundError,
)

logger = logging.getLogger(__name__)


def _fsync_dir(path: Path) -> None:
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError as exc:
        logger.debug("directory fsync failed for %s: %s", path, exc)
    finally:
        os.close(fd)


class PersistentStore:
    """Durable store for one envelope, bound to one target path."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.temp_path = self.path.with_name(self.path.name + ".tmp")
        self._write_lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.is_file()

    def write(self, envelope: IntegrityEnvelope) -> None:
        """
        Persist ``envelope`` atomically.

        Raises:
            StoreError: the directory could not be created, or the temp file
                could not be written or renamed. The previous target file, if
                any, is left untouched.
        """
        payload = envelope.to_json()
        with self._write_lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.temp_path, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(self.temp_path, self.path)
            except OSError as exc:
                raise StoreError(self.path, f"failed to write report ({exc})") from exc
            finally:
                if self.temp_path.exists():
                    try:
                        self.temp_path.unlink()
                    except OSError as exc:
                        logger.warning("could not remove temp file %s: %s", self.temp_path, exc)
            _fsync_dir(self.path.parent)

    def read(self) -> IntegrityEnvelope:
        """
        Load and verify the persisted envelope.

        Raises:
            StoreNotFoundError: the target file does not exist.
            StoreCorruptError: the file is not a valid envelope document.
            ChecksumMismatchError: the report does not match its checksum.
            StoreError: any other I/O failure.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise StoreNotFoundError(self.path) from exc
        except UnicodeDecodeError as exc:
            raise StoreCorruptError(self.path, "report file is not valid UTF-8") from exc
        except OSError as exc:
            raise StoreError(self.path, f"failed to read report ({exc})") from exc

        try:
            envelope = IntegrityEnvelope.from_json(text)
        except ValidationError as exc:
            raise StoreCorruptError(self.path, "failed to parse report file") from exc

        try:
            actual = envelope.expected_checksum()
        except ValueError as exc:
            raise StoreCorruptError(self.path, "report contains non-canonical values") from exc
        if actual != envelope.checksum:
            raise ChecksumMismatchError(self.path, envelope.checksum, actual)
        return envelope
