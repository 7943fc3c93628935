"""
Integrity envelope around a Report.

The envelope is what gets persisted and cached:

    {"checksum": "sha256:...", "collected_at": "<RFC3339>",
     "collector_version": "...", "report": {...}}

``checksum`` is computed over the canonical JSON of ``report`` only, so it can
be recomputed by anyone holding the file. It guards against corruption, not
against a writer with filesystem access.

Age and staleness are whole seconds relative to ``collected_at``. A negative
age (the clock went backwards since collection) is passed through unchanged
and is never considered stale.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict

from . import __version__
from .hashing import checksum_of
from .report import Report


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IntegrityEnvelope(BaseModel):
    """A report plus its checksum and collection metadata."""
    model_config = ConfigDict(frozen=True)

    checksum: str
    collected_at: datetime
    collector_version: str
    report: Report

    @classmethod
    def wrap(
        cls,
        report: Report,
        *,
        now: Optional[datetime] = None,
        collector_version: Optional[str] = None
    ) -> "IntegrityEnvelope":
        """Checksum ``report`` and stamp it with the collection time."""
        return cls(
            checksum=checksum_of(report),
            collected_at=now or utc_now(),
            collector_version=collector_version or __version__,
            report=report,
        )

    def expected_checksum(self) -> str:
        return checksum_of(self.report)

    def verify(self) -> bool:
        """True iff the stored checksum matches the report content."""
        return self.checksum == self.expected_checksum()

    def age_seconds(self, now: Optional[datetime] = None) -> int:
        delta = (now or utc_now()) - self.collected_at
        return int(delta.total_seconds())

    def is_stale(self, max_age_seconds: int, now: Optional[datetime] = None) -> bool:
        return self.age_seconds(now) > max_age_seconds

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "IntegrityEnvelope":
        return cls.model_validate_json(text)
