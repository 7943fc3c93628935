"""
Fleet node model.

A Node pairs a declared identity with its latest runtime report. Drift items
record where the two disagree. These are data types only; nothing in the
daemon computes drift yet.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .identity import DeclaredIdentity
from .report import Report


class NodeStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    DEGRADED = "degraded"
    MAINTENANCE = "maintenance"
    UNKNOWN = "unknown"


class DriftSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class DriftItem(BaseModel):
    category: str
    field: str
    expected: Optional[str] = None
    actual: Optional[str] = None
    severity: DriftSeverity = DriftSeverity.INFO


class Node(BaseModel):
    identity: DeclaredIdentity
    report: Optional[Report] = None
    status: NodeStatus = NodeStatus.UNKNOWN
    last_seen: Optional[datetime] = None
    first_seen: datetime
    drift: List[DriftItem] = Field(default_factory=list)
