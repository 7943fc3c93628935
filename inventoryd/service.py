"""
Node service: owns the declared identity and the cached report.

Two independent slots, each empty or populated:

    identity  DeclaredIdentity   replaced by load_identity / reload_identity
    cache     IntegrityEnvelope  replaced by load_from_disk / refresh

Values in a slot are immutable and are replaced wholesale, so a reader that
got a value keeps a complete snapshot no matter what happens next.

``refresh()`` is the only path that collects. It persists the new envelope
before publishing it to the cache, and the write and the cache swap happen
under one lock, so the visible cache always matches the file last written.
Read accessors never trigger collection.
"""

import asyncio
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Generic, Optional, Sequence, TypeVar, Union

from .collector import Collector
from .envelope import IntegrityEnvelope
from .errors import IdentityError, InventoryError, StoreError, StoreNotFoundError
from .identity import DeclaredIdentity, IdentityLoader, RedactedIdentity
from .logging_config import correlation_id_var, event_log, get_correlation_id
from .store import PersistentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotSlot(Generic[T]):
    """A single value, read and replaced atomically."""

    def __init__(self, value: Optional[T] = None):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> Optional[T]:
        with self._lock:
            return self._value

    def replace(self, value: Optional[T]) -> Optional[T]:
        """Swap in ``value`` and return the previous one."""
        with self._lock:
            previous, self._value = self._value, value
            return previous


class NodeService:
    """
    Orchestrates collect -> wrap -> persist -> cache and serves the results.

    Args:
        collector: source of fresh reports
        store: persistent store for the latest envelope
        loader: identity loader (holds the default overlay directory)
        identity_path: base identity document
        overlay_dirs: extra overlay directories, after the default one
        private_fields: dot-separated paths removed by ``redacted_identity``
        max_age_seconds: staleness threshold for the cached report
    """

    def __init__(
        self,
        collector: Collector,
        store: PersistentStore,
        loader: IdentityLoader,
        identity_path: Union[str, Path],
        overlay_dirs: Sequence[Union[str, Path]] = (),
        private_fields: Sequence[str] = (),
        max_age_seconds: int = 3600
    ):
        self.collector = collector
        self.store = store
        self.loader = loader
        self.identity_path = Path(identity_path).expanduser()
        self.overlay_dirs = list(overlay_dirs)
        self.private_fields = list(private_fields)
        self.max_age_seconds = max_age_seconds

        self._identity: SnapshotSlot[DeclaredIdentity] = SnapshotSlot()
        self._cache: SnapshotSlot[IntegrityEnvelope] = SnapshotSlot()
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config, probes=None) -> "NodeService":
        """Build a service from a ``DaemonConfig``."""
        from .probes import select_probes

        if probes is None:
            probes = select_probes(timeout=config.report.probe_timeout_secs)
        return cls(
            collector=Collector(probes),
            store=PersistentStore(config.report.cache_file),
            loader=IdentityLoader(config.identity.default_overlay_dir),
            identity_path=config.identity.path,
            overlay_dirs=config.identity.overlay_dirs,
            private_fields=config.identity.private_fields,
            max_age_seconds=config.report.max_age_secs,
        )

    # ============================================================
    # Identity slot
    # ============================================================

    def load_identity(self) -> Optional[DeclaredIdentity]:
        """
        Startup identity load.

        A missing base document leaves the slot empty. If merging overlays
        fails the base document alone is used; if that fails too the slot
        stays empty. Never raises.
        """
        if not self.identity_path.exists():
            logger.info("no node identity at %s", self.identity_path)
            return None
        try:
            identity = self.loader.load_with_overlays(self.identity_path, self.overlay_dirs)
        except IdentityError as exc:
            logger.warning("failed to load node identity with overlays, falling back to base: %s", exc)
            try:
                identity = self.loader.load(self.identity_path)
            except IdentityError as base_exc:
                logger.error("failed to load base node identity: %s", base_exc)
                return None
        self._identity.replace(identity)
        return identity

    def identity(self) -> Optional[DeclaredIdentity]:
        return self._identity.get()

    def redacted_identity(self) -> Optional[RedactedIdentity]:
        """The identity with ``private_fields`` removed, or None if there is none."""
        identity = self._identity.get()
        if identity is None:
            return None
        try:
            return self.loader.redact(identity, self.private_fields)
        except IdentityError as exc:
            logger.error("failed to redact identity, withholding it: %s", exc)
            return None

    async def reload_identity(self) -> DeclaredIdentity:
        """
        Re-read and re-merge the identity, replacing the slot on success.

        Raises:
            IdentityError: the previous identity is kept.
        """
        try:
            identity = await asyncio.to_thread(
                self.loader.load_with_overlays, self.identity_path, self.overlay_dirs
            )
        except IdentityError as exc:
            event_log.identity_reload_failed(str(self.identity_path), exc)
            raise
        self._identity.replace(identity)
        logger.info("reloaded node identity with overlays")
        return identity

    # ============================================================
    # Report cache slot
    # ============================================================

    async def load_from_disk(self) -> Optional[IntegrityEnvelope]:
        """
        Seed the cache from the persisted report, if present and intact.

        A missing, unreadable, corrupt or checksum-failing file leaves the
        cache as it was. Never raises.
        """
        path = str(self.store.path)
        if not self.store.exists():
            event_log.cache_load_skipped(path)
            return None
        try:
            envelope = await asyncio.to_thread(self.store.read)
        except StoreNotFoundError:
            event_log.cache_load_skipped(path)
            return None
        except StoreError as exc:
            event_log.cache_load_failed(path, exc)
            return None

        event_log.cache_loaded(envelope.checksum, envelope.age_seconds())
        self._cache.replace(envelope)
        return envelope

    async def refresh(self, trigger: str = "manual") -> IntegrityEnvelope:
        """
        Collect, wrap, persist and publish a new report.

        Raises:
            StoreError: the report could not be written; the cache keeps its
                previous value.
        """
        token = None
        if not get_correlation_id():
            token = correlation_id_var.set(str(uuid.uuid4()))
        try:
            report = await self.collector.collect()
            envelope = IntegrityEnvelope.wrap(report)
            async with self._refresh_lock:
                await asyncio.to_thread(self.store.write, envelope)
                event_log.report_persisted(envelope.checksum, str(self.store.path))
                self._cache.replace(envelope)
            event_log.refresh_completed(trigger, envelope.checksum)
            return envelope
        except (InventoryError, OSError, ValueError) as exc:
            event_log.refresh_failed(trigger, exc)
            raise
        finally:
            if token is not None:
                correlation_id_var.reset(token)

    def cached_report(self) -> Optional[IntegrityEnvelope]:
        return self._cache.get()

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True when the cache is empty or older than ``max_age_seconds``."""
        envelope = self._cache.get()
        if envelope is None:
            return True
        return envelope.is_stale(self.max_age_seconds, now)
