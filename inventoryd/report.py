"""
Report data model for inventoryd.

A Report is one point-in-time snapshot of a machine. Every section carries a
zero/empty default, so ``HardwareSnapshot()`` is exactly what the collector
substitutes when the hardware probe fails. Security defaults are the
pessimistic ones: an unknown sshd policy reports root and password logins as
allowed.

All models are frozen; a newer snapshot supersedes an older one, it is never
edited in place.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from . import __version__

UNKNOWN = "unknown"


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


# ============================================================
# Hardware
# ============================================================

class DiskSnapshot(_Snapshot):
    device: str
    mount_point: str
    filesystem: str
    total_bytes: int = 0
    used_bytes: int = 0
    available_bytes: int = 0
    smart_healthy: Optional[bool] = None


class GpuSnapshot(_Snapshot):
    name: str
    vendor: str
    vram_bytes: Optional[int] = None
    metal_support: Optional[str] = None


class TemperatureReading(_Snapshot):
    label: str
    celsius: float


class PowerSnapshot(_Snapshot):
    on_battery: bool = False
    charge_percent: Optional[float] = None
    charging: bool = False
    time_remaining_minutes: Optional[int] = None


class HardwareSnapshot(_Snapshot):
    cpu_model: str = UNKNOWN
    cpu_vendor: str = UNKNOWN
    cpu_architecture: str = UNKNOWN
    cpu_cores: int = 0
    cpu_threads: int = 0
    cpu_frequency_mhz: Optional[int] = None
    cpu_cache_bytes: Optional[int] = None
    ram_total_bytes: int = 0
    ram_available_bytes: int = 0
    swap_total_bytes: int = 0
    swap_used_bytes: int = 0
    disks: List[DiskSnapshot] = Field(default_factory=list)
    gpus: List[GpuSnapshot] = Field(default_factory=list)
    temperatures: List[TemperatureReading] = Field(default_factory=list)
    power: Optional[PowerSnapshot] = None


# ============================================================
# Operating system
# ============================================================

class OsSnapshot(_Snapshot):
    distribution: str = UNKNOWN
    version: str = UNKNOWN
    kernel_version: str = UNKNOWN
    architecture: str = UNKNOWN
    platform_triple: str = UNKNOWN
    hostname: str = UNKNOWN
    product_name: Optional[str] = None
    build_id: Optional[str] = None
    systemd_version: Optional[str] = None
    boot_time: Optional[datetime] = None
    uptime_secs: int = 0
    timezone: Optional[str] = None
    is_wsl: bool = False
    virtualization: Optional[str] = None


# ============================================================
# Network
# ============================================================

class InterfaceSnapshot(_Snapshot):
    name: str
    state: str = UNKNOWN
    addresses: List[str] = Field(default_factory=list)
    mac: Optional[str] = None
    mtu: Optional[int] = None
    rx_bytes: int = 0
    tx_bytes: int = 0
    speed_mbps: Optional[int] = None
    interface_type: Optional[str] = None


class RouteSnapshot(_Snapshot):
    destination: str
    gateway: Optional[str] = None
    interface: str = ""


class ListeningPort(_Snapshot):
    port: int
    protocol: str
    address: Optional[str] = None
    process: Optional[str] = None


class NetworkSnapshot(_Snapshot):
    hostname: str = UNKNOWN
    interfaces: List[InterfaceSnapshot] = Field(default_factory=list)
    routes: List[RouteSnapshot] = Field(default_factory=list)
    dns_resolvers: List[str] = Field(default_factory=list)
    default_gateway: Optional[str] = None
    listening_ports: List[ListeningPort] = Field(default_factory=list)


# ============================================================
# Nix store
# ============================================================

class NixSnapshot(_Snapshot):
    nix_version: str = UNKNOWN
    store_size_bytes: int = 0
    store_path_count: int = 0
    gc_roots_count: int = 0
    last_rebuild_timestamp: Optional[datetime] = None
    current_system_path: Optional[str] = None
    substituters: List[str] = Field(default_factory=list)
    system_generations: int = 0
    channels: List[str] = Field(default_factory=list)
    trusted_users: List[str] = Field(default_factory=list)
    max_jobs: Optional[str] = None
    sandbox_enabled: bool = False


# ============================================================
# Kubernetes (optional section)
# ============================================================

class K8sCondition(_Snapshot):
    condition_type: str
    status: str
    message: Optional[str] = None


class K8sSnapshot(_Snapshot):
    k3s_version: Optional[str] = None
    node_ready: bool = False
    pod_count: int = 0
    namespace_count: int = 0
    conditions: List[K8sCondition] = Field(default_factory=list)
    cpu_requests_millis: int = 0
    cpu_limits_millis: int = 0
    memory_requests_bytes: int = 0
    memory_limits_bytes: int = 0
    flux_installed: Optional[bool] = None
    helm_releases: Optional[int] = None


# ============================================================
# Health, processes, security
# ============================================================

class DiskUsage(_Snapshot):
    mount_point: str
    usage_percent: float


class HealthMetrics(_Snapshot):
    load_average_1m: float = 0.0
    load_average_5m: float = 0.0
    load_average_15m: float = 0.0
    memory_usage_percent: float = 0.0
    swap_usage_percent: float = 0.0
    cpu_usage_percent: float = 0.0
    disk_usage: List[DiskUsage] = Field(default_factory=list)
    open_file_descriptors: Optional[int] = None
    max_file_descriptors: Optional[int] = None


class ProcessInfo(_Snapshot):
    pid: int
    name: str
    cpu_percent: float = 0.0
    memory_percent: float = 0.0


class ProcessSnapshot(_Snapshot):
    total_processes: int = 0
    running_processes: int = 0
    zombie_processes: int = 0
    top_cpu: List[ProcessInfo] = Field(default_factory=list)
    top_memory: List[ProcessInfo] = Field(default_factory=list)


class CertStatus(_Snapshot):
    domain: str
    expiry: Optional[datetime] = None
    days_until_expiry: Optional[int] = None
    issuer: Optional[str] = None


class SecuritySnapshot(_Snapshot):
    ssh_keys_deployed: List[str] = Field(default_factory=list)
    tls_certificates: List[CertStatus] = Field(default_factory=list)
    firewall_active: bool = False
    firewall_rules_count: int = 0
    firewall_backend: Optional[str] = None
    sshd_running: bool = False
    root_login_allowed: bool = True
    password_auth_enabled: bool = True


# ============================================================
# Report
# ============================================================

class Report(_Snapshot):
    """One point-in-time inventory snapshot of a machine."""
    timestamp: datetime
    daemon_version: str = __version__
    hostname: str = UNKNOWN
    hardware: HardwareSnapshot = Field(default_factory=HardwareSnapshot)
    os: OsSnapshot = Field(default_factory=OsSnapshot)
    network: NetworkSnapshot = Field(default_factory=NetworkSnapshot)
    nix: NixSnapshot = Field(default_factory=NixSnapshot)
    kubernetes: Optional[K8sSnapshot] = None
    health: HealthMetrics = Field(default_factory=HealthMetrics)
    security: SecuritySnapshot = Field(default_factory=SecuritySnapshot)
    processes: ProcessSnapshot = Field(default_factory=ProcessSnapshot)


# Section name -> model, in report order. The collector fans out over this.
SECTIONS = {
    "hardware": HardwareSnapshot,
    "os": OsSnapshot,
    "network": NetworkSnapshot,
    "nix": NixSnapshot,
    "kubernetes": K8sSnapshot,
    "health": HealthMetrics,
    "security": SecuritySnapshot,
    "processes": ProcessSnapshot,
}
