"""Platform probes, selected once at startup by ``select_probes``."""

import sys
from typing import Optional

from .base import DEFAULT_TIMEOUT, PlatformProbes, read_text, run_cmd
from .darwin import DarwinProbes
from .linux import LinuxProbes


def select_probes(platform: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT) -> PlatformProbes:
    """Probe implementation for ``platform`` (default ``sys.platform``)."""
    platform = platform or sys.platform
    if platform == "darwin":
        return DarwinProbes(timeout=timeout)
    return LinuxProbes(timeout=timeout)


__all__ = [
    "DEFAULT_TIMEOUT",
    "PlatformProbes",
    "LinuxProbes",
    "DarwinProbes",
    "select_probes",
    "run_cmd",
    "read_text",
]
