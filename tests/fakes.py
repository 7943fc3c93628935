"""Deterministic probes and reports for tests; nothing here touches the host."""

from datetime import datetime, timezone

from inventoryd.errors import ProbeError
from inventoryd.probes import PlatformProbes
from inventoryd.probes.parsers import GIB
from inventoryd.report import (
    DiskSnapshot,
    HardwareSnapshot,
    HealthMetrics,
    K8sSnapshot,
    NetworkSnapshot,
    NixSnapshot,
    OsSnapshot,
    ProcessSnapshot,
    Report,
    SecuritySnapshot,
)

COLLECTED_AT = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_report(hostname: str = "testbox", **sections) -> Report:
    fields = {
        "timestamp": COLLECTED_AT,
        "hostname": hostname,
        "hardware": HardwareSnapshot(
            cpu_model="Test CPU 3000",
            cpu_vendor="AMD",
            cpu_architecture="x86_64",
            cpu_cores=8,
            cpu_threads=16,
            ram_total_bytes=32 * GIB,
            ram_available_bytes=20 * GIB,
            disks=[DiskSnapshot(device="/dev/nvme0n1p2", mount_point="/", filesystem="ext4",
                                total_bytes=500 * GIB, used_bytes=120 * GIB,
                                available_bytes=380 * GIB)],
        ),
        "os": OsSnapshot(distribution="NixOS", version="24.05", kernel_version="6.6.30",
                         architecture="x86_64", hostname=hostname, uptime_secs=93784),
        "nix": NixSnapshot(nix_version="2.18.1", store_size_bytes=40 * GIB),
    }
    fields.update(sections)
    return Report(**fields)


class FakeProbes(PlatformProbes):
    """
    Canned sections. ``failing`` names sections whose probe raises; every
    call is recorded in ``calls``.
    """

    name = "fake"

    def __init__(self, failing=(), hostname="testbox", cluster=False):
        super().__init__(timeout=1.0, home="/nonexistent")
        self.failing = set(failing)
        self.cluster = cluster
        self._hostname = hostname
        self.calls = []

    def hostname(self) -> str:
        return self._hostname

    async def _section(self, name, value):
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} probe exploded")
        return value

    async def hardware(self):
        return await self._section("hardware", HardwareSnapshot(cpu_model="Fake CPU", cpu_cores=4))

    async def os(self):
        return await self._section("os", OsSnapshot(distribution="NixOS", hostname=self._hostname))

    async def network(self):
        return await self._section("network", NetworkSnapshot(hostname=self._hostname))

    async def health(self):
        return await self._section("health", HealthMetrics(load_average_1m=0.5))

    async def firewall(self):
        return True, 3, "nftables"

    async def nix(self):
        return await self._section("nix", NixSnapshot(nix_version="2.18.1"))

    async def kubernetes(self):
        if not self.cluster:
            self.calls.append("kubernetes")
            raise ProbeError("kubectl not available or cluster unreachable")
        return await self._section("kubernetes", K8sSnapshot(node_ready=True, pod_count=12))

    async def processes(self):
        return await self._section("processes", ProcessSnapshot(total_processes=42))

    async def security(self):
        return await self._section("security", SecuritySnapshot(
            firewall_active=True, root_login_allowed=False, password_auth_enabled=False
        ))
