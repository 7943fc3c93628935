"""
inventoryd: node inventory daemon

Version: 0.1.0

Every node answers two questions: what it is declared to be, and what it
actually is right now.

    declared identity   node.yaml + identity.d/*.yaml overlays, deep-merged
    observed report     hardware, os, network, package store, cluster,
                        health, security and processes, probed live

Observed reports flow through a fixed pipeline:

    Collector -> IntegrityEnvelope -> PersistentStore -> NodeService cache

A report is only ever published after it has been written to disk with a
checksum over its canonical JSON, so a restarted daemon serves the last good
report immediately and a tampered file is never trusted.

Usage:
    from inventoryd import (
        Collector,
        IdentityLoader,
        IntegrityEnvelope,
        NodeService,
        PersistentStore,
        select_probes,
    )

    service = NodeService(
        collector=Collector(select_probes()),
        store=PersistentStore("/var/lib/inventoryd/report.json"),
        loader=IdentityLoader("/etc/inventoryd/identity.d"),
        identity_path="/etc/inventoryd/node.yaml",
        private_fields=["secrets.age_keys"],
    )

    service.load_identity()
    await service.load_from_disk()      # serve the last report right away
    envelope = await service.refresh()  # collect, persist, publish

    assert envelope.verify()
    print(envelope.checksum, envelope.age_seconds())
"""

__version__ = "0.1.0"

# Canonicalization and hashing
from .canonicalization import canonicalize, canonicalize_str
from .hashing import sha256_hash, checksum_of, verify_hash

# Errors
from .errors import (
    InventoryError,
    StoreError,
    StoreNotFoundError,
    StoreCorruptError,
    ChecksumMismatchError,
    IdentityError,
    ConfigError,
    ProbeError,
)

# Report model
from .report import Report, SECTIONS
from .node import Node, NodeStatus, DriftItem, DriftSeverity

# Integrity and persistence
from .envelope import IntegrityEnvelope
from .store import PersistentStore

# Identity
from .merge import deep_merge, remove_field_path
from .identity import DeclaredIdentity, IdentityLoader, RedactedIdentity

# Collection
from .probes import PlatformProbes, LinuxProbes, DarwinProbes, select_probes
from .collector import Collector

# Orchestration
from .service import NodeService, SnapshotSlot
from .scheduler import RefreshScheduler

__all__ = [
    # Version
    "__version__",

    # Canonicalization and hashing
    "canonicalize",
    "canonicalize_str",
    "sha256_hash",
    "checksum_of",
    "verify_hash",

    # Errors
    "InventoryError",
    "StoreError",
    "StoreNotFoundError",
    "StoreCorruptError",
    "ChecksumMismatchError",
    "IdentityError",
    "ConfigError",
    "ProbeError",

    # Report model
    "Report",
    "SECTIONS",
    "Node",
    "NodeStatus",
    "DriftItem",
    "DriftSeverity",

    # Integrity and persistence
    "IntegrityEnvelope",
    "PersistentStore",

    # Identity
    "deep_merge",
    "remove_field_path",
    "DeclaredIdentity",
    "IdentityLoader",
    "RedactedIdentity",

    # Collection
    "PlatformProbes",
    "LinuxProbes",
    "DarwinProbes",
    "select_probes",
    "Collector",

    # Orchestration
    "NodeService",
    "SnapshotSlot",
    "RefreshScheduler",
]
