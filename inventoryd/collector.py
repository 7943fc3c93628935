"""
Report collector.

``collect()`` fans out one task per report section, waits for all of them,
and assembles the Report. A section whose probe raises is replaced by its
zero-value default and logged; it never cancels or fails its siblings, so
``collect()`` itself always returns a Report. The kubernetes section is
optional and becomes None instead.

The report timestamp is taken once, after every probe has finished.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from . import __version__
from .logging_config import event_log
from .probes import PlatformProbes
from .report import SECTIONS, Report

logger = logging.getLogger(__name__)

OPTIONAL_SECTIONS = {"kubernetes"}


class Collector:
    """Gathers a fresh Report from a ``PlatformProbes`` implementation."""

    def __init__(self, probes: PlatformProbes, hostname: Optional[str] = None):
        self.probes = probes
        self.hostname = hostname

    async def collect(self) -> Report:
        names = list(SECTIONS)
        results = await asyncio.gather(
            *(getattr(self.probes, name)() for name in names),
            return_exceptions=True,
        )

        sections: Dict[str, Any] = {}
        failed = []
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                failed.append(name)
                if name in OPTIONAL_SECTIONS:
                    logger.debug("%s section unavailable: %s", name, result)
                    sections[name] = None
                else:
                    event_log.probe_failed(name, result)
                    sections[name] = SECTIONS[name]()
            elif isinstance(result, BaseException):
                raise result
            else:
                sections[name] = result

        hostname = self.hostname or self.probes.hostname()
        report = Report(
            timestamp=datetime.now(timezone.utc),
            daemon_version=__version__,
            hostname=hostname,
            **sections,
        )
        event_log.report_collected(hostname, failed)
        return report
