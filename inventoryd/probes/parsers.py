"""
Pure text parsers for platform probe output.

Each function takes the raw text of a file or command and returns plain
values or report models. Apart from ``parse_k8s_nodes`` none of them raise
on malformed input: unparsable lines are skipped and missing values come
back as zero, empty or None, the same as a probe that could not run at all.
"""

import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..report import (
    DiskSnapshot,
    DiskUsage,
    GpuSnapshot,
    InterfaceSnapshot,
    K8sCondition,
    ListeningPort,
    PowerSnapshot,
    ProcessInfo,
    ProcessSnapshot,
    RouteSnapshot,
)

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB

TOP_PROCESSES = 5

LINUX_PSEUDO_FILESYSTEMS = {"tmpfs", "devtmpfs", "squashfs", "overlay"}
DARWIN_HIDDEN_VOLUMES = (
    "/System/Volumes/VM",
    "/System/Volumes/Preboot",
    "/System/Volumes/Update",
    "/System/Volumes/xarts",
    "/System/Volumes/iSCPreboot",
    "/System/Volumes/Hardware",
)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(result):
        return default
    return result


def _json(text: Optional[str]) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def percent(part: float, total: float) -> float:
    """``part`` as a percentage of ``total``; 0.0 when total is zero."""
    if total <= 0:
        return 0.0
    return (part / total) * 100.0


def first_line(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    stripped = text.strip()
    return stripped.splitlines()[0].strip() if stripped else None


# ============================================================
# Linux /proc and /etc
# ============================================================

def meminfo_kb(meminfo: str, field: str) -> int:
    """Value in kB of ``field`` from /proc/meminfo, 0 when absent."""
    for line in meminfo.splitlines():
        if line.startswith(field + ":"):
            parts = line.split()
            return _int(parts[1]) if len(parts) > 1 else 0
    return 0


def parse_os_release(content: str) -> Dict[str, str]:
    """Parse /etc/os-release KEY=value lines, unquoting values."""
    fields: Dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        fields[key.strip()] = value.strip().strip('"').strip("'")
    return fields


def cpuinfo_field(cpuinfo: str, field: str) -> Optional[str]:
    """First value of ``field`` in /proc/cpuinfo."""
    for line in cpuinfo.splitlines():
        if line.startswith(field):
            _, sep, value = line.partition(":")
            if sep:
                return value.strip()
    return None


def cpu_vendor(vendor_id: str) -> str:
    if "GenuineIntel" in vendor_id:
        return "Intel"
    if "AuthenticAMD" in vendor_id:
        return "AMD"
    return vendor_id


def parse_cpuinfo(cpuinfo: str) -> Dict[str, Any]:
    """Model, vendor, core/thread counts, frequency and cache from /proc/cpuinfo."""
    threads = sum(1 for line in cpuinfo.splitlines() if line.startswith("processor"))
    cores = cpuinfo_field(cpuinfo, "cpu cores")
    freq = cpuinfo_field(cpuinfo, "cpu MHz")
    cache = cpuinfo_field(cpuinfo, "cache size")

    cache_bytes = None
    if cache:
        kb = cache.replace("KB", "").strip()
        if kb.isdigit():
            cache_bytes = int(kb) * KIB

    return {
        "cpu_model": cpuinfo_field(cpuinfo, "model name") or "unknown",
        "cpu_vendor": cpu_vendor(cpuinfo_field(cpuinfo, "vendor_id") or ""),
        "cpu_threads": threads,
        "cpu_cores": _int(cores, threads) if cores is not None else threads,
        "cpu_frequency_mhz": int(_float(freq)) if freq else None,
        "cpu_cache_bytes": cache_bytes,
    }


def parse_resolv_conf(content: str) -> List[str]:
    resolvers = []
    for line in content.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "nameserver":
            resolvers.append(parts[1])
    return resolvers


def parse_uptime(content: str) -> int:
    """Whole seconds of uptime from /proc/uptime."""
    parts = content.split()
    return int(_float(parts[0])) if parts else 0


def parse_loadavg(content: str) -> Tuple[float, float, float]:
    """Load averages from /proc/loadavg or ``sysctl -n vm.loadavg``."""
    values = [_float(v) for v in content.strip().strip("{}").split()[:3]]
    values += [0.0] * (3 - len(values))
    return values[0], values[1], values[2]


def parse_file_nr(content: str) -> Tuple[Optional[int], Optional[int]]:
    """(open, max) file descriptors from /proc/sys/fs/file-nr."""
    parts = content.split()
    open_fds = _int(parts[0], None) if len(parts) > 0 else None
    max_fds = _int(parts[2], None) if len(parts) > 2 else None
    return open_fds, max_fds


def parse_cpu_stat(content: str) -> Optional[Tuple[int, int]]:
    """(idle, total) jiffies from the aggregate ``cpu`` line of /proc/stat."""
    line = first_line(content)
    if not line:
        return None
    values = [_int(v, None) for v in line.split()[1:]]
    values = [v for v in values if v is not None]
    if len(values) < 4:
        return None
    return values[3], sum(values)


def cpu_usage_between(before: Optional[Tuple[int, int]], after: Optional[Tuple[int, int]]) -> float:
    if before is None or after is None:
        return 0.0
    idle_delta = max(0, after[0] - before[0])
    total_delta = max(0, after[1] - before[1])
    return percent(total_delta - idle_delta, total_delta)


def is_wsl(proc_version: str) -> bool:
    lower = proc_version.lower()
    return "microsoft" in lower or "wsl" in lower


def virtualization_from_dmi(product_name: str) -> str:
    dmi = product_name.strip().lower()
    for needle, name in (("vmware", "vmware"), ("virtualbox", "virtualbox"),
                         ("kvm", "kvm"), ("qemu", "kvm"), ("hyper-v", "hyper-v")):
        if needle in dmi:
            return name
    return "vm"


def container_from_cgroup(cgroup: str) -> Optional[str]:
    for needle, name in (("docker", "docker"), ("lxc", "lxc"), ("kubepods", "kubernetes")):
        if needle in cgroup:
            return name
    return None


def systemd_version(output: Optional[str]) -> Optional[str]:
    """``systemd 255 (255.4)`` -> ``255``."""
    line = first_line(output)
    if not line:
        return None
    parts = line.split()
    return parts[1] if len(parts) > 1 else None


# ============================================================
# Linux network
# ============================================================

def parse_ip_addr(json_text: str) -> List[InterfaceSnapshot]:
    """Interfaces from ``ip -j addr``."""
    parsed = _json(json_text)
    if not isinstance(parsed, list):
        return []

    interfaces = []
    for iface in parsed:
        if not isinstance(iface, dict):
            continue
        addresses = []
        for addr in iface.get("addr_info") or []:
            local = addr.get("local") if isinstance(addr, dict) else None
            if not local:
                continue
            prefix = addr.get("prefixlen")
            addresses.append(f"{local}/{prefix}" if prefix is not None else local)

        interfaces.append(InterfaceSnapshot(
            name=iface.get("ifname") or "unknown",
            state=(iface.get("operstate") or "unknown").lower(),
            addresses=addresses,
            mac=iface.get("address"),
            mtu=iface.get("mtu"),
            interface_type=iface.get("link_type"),
        ))
    return interfaces


def parse_ip_route(json_text: str) -> List[RouteSnapshot]:
    """Routes from ``ip -j route``."""
    parsed = _json(json_text)
    if not isinstance(parsed, list):
        return []
    return [
        RouteSnapshot(
            destination=route.get("dst") or "unknown",
            gateway=route.get("gateway"),
            interface=route.get("dev") or "",
        )
        for route in parsed
        if isinstance(route, dict)
    ]


def parse_proc_net_dev(content: str) -> Dict[str, Tuple[int, int]]:
    """Interface name -> (rx_bytes, tx_bytes) from /proc/net/dev."""
    traffic = {}
    for line in content.splitlines()[2:]:
        name, sep, stats = line.strip().partition(":")
        if not sep:
            continue
        parts = stats.split()
        if len(parts) >= 9:
            traffic[name.strip()] = (_int(parts[0]), _int(parts[8]))
    return traffic


def apply_traffic(
    interfaces: List[InterfaceSnapshot],
    traffic: Dict[str, Tuple[int, int]]
) -> List[InterfaceSnapshot]:
    """Copy rx/tx byte counters onto matching interfaces."""
    result = []
    for iface in interfaces:
        if iface.name in traffic:
            rx, tx = traffic[iface.name]
            iface = iface.model_copy(update={"rx_bytes": rx, "tx_bytes": tx})
        result.append(iface)
    return result


def default_gateway(routes: Iterable[RouteSnapshot]) -> Optional[str]:
    for route in routes:
        if route.destination == "default":
            return route.gateway
    return None


def _split_host_port(local: str) -> Tuple[Optional[str], Optional[int]]:
    address, sep, port = local.rpartition(":")
    if not sep or not port.isdigit():
        return None, None
    port_num = int(port)
    if port_num > 65535:
        return None, None
    return address or None, port_num


def parse_ss_listening(output: str, protocol: str) -> List[ListeningPort]:
    """Listening sockets from ``ss -tlnp`` / ``ss -ulnp``."""
    ports = []
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 5:
            continue
        address, port = _split_host_port(parts[3])
        if port is None:
            continue
        process = None
        if len(parts) > 5:
            # users:(("sshd",pid=812,fd=3))
            quoted = parts[5].split('"')
            process = quoted[1] if len(quoted) > 1 else parts[5]
        ports.append(ListeningPort(port=port, protocol=protocol, address=address, process=process))
    return ports


# ============================================================
# Disks
# ============================================================

def parse_df_linux(output: str) -> List[DiskSnapshot]:
    """Real filesystems from ``df -kT``."""
    disks = []
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 7:
            continue
        device, filesystem, mount_point = parts[0], parts[1], parts[6]
        if (filesystem in LINUX_PSEUDO_FILESYSTEMS or device == "none"
                or mount_point.startswith("/snap/")):
            continue
        total_kb = _int(parts[2])
        if total_kb == 0:
            continue
        disks.append(DiskSnapshot(
            device=device,
            mount_point=mount_point,
            filesystem=filesystem,
            total_bytes=total_kb * KIB,
            used_bytes=_int(parts[3]) * KIB,
            available_bytes=_int(parts[4]) * KIB,
        ))
    return disks


def parse_mount_types(output: str) -> Dict[str, str]:
    """Mount point -> filesystem type from macOS ``mount``."""
    types = {}
    for line in output.splitlines():
        _, sep, rest = line.partition(" on ")
        if not sep:
            continue
        mount_point, sep, fs_info = rest.partition(" (")
        if sep:
            types[mount_point] = fs_info.split(",")[0].strip()
    return types


def parse_df_darwin(df_output: str, fs_types: Dict[str, str]) -> List[DiskSnapshot]:
    """Real volumes from macOS ``df -k``, typed via ``parse_mount_types``."""
    disks = []
    for line in df_output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 6:
            continue
        device, mount_point = parts[0], parts[-1]
        if device in ("devfs", "map") or mount_point.startswith(DARWIN_HIDDEN_VOLUMES):
            continue
        total_kb = _int(parts[1])
        if total_kb == 0:
            continue
        disks.append(DiskSnapshot(
            device=device,
            mount_point=mount_point,
            filesystem=fs_types.get(mount_point, ""),
            total_bytes=total_kb * KIB,
            used_bytes=_int(parts[2]) * KIB,
            available_bytes=_int(parts[3]) * KIB,
        ))
    return disks


def parse_df_usage(output: str) -> List[DiskUsage]:
    """Per-mount usage percentages from ``df -k``."""
    usage = []
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 5:
            continue
        device = parts[0]
        if device in ("devfs", "map", "none") or device.startswith("tmpfs"):
            continue
        pct = _float(parts[4].rstrip("%"), None)
        if pct is not None:
            usage.append(DiskUsage(mount_point=parts[-1], usage_percent=pct))
    return usage


# ============================================================
# GPUs and power
# ============================================================

def _short_vendor(vendor: str) -> str:
    if "NVIDIA" in vendor:
        return "NVIDIA"
    if "Advanced Micro" in vendor or "AMD" in vendor:
        return "AMD"
    if "Intel" in vendor:
        return "Intel"
    return vendor


def parse_lspci_gpus(output: str) -> List[GpuSnapshot]:
    """Display controllers from ``lspci -mm``."""
    gpus = []
    for line in output.splitlines():
        lower = line.lower()
        if not ("vga" in lower or "3d" in lower or "display" in lower):
            continue
        parts = line.split('"')
        if len(parts) >= 6:
            gpus.append(GpuSnapshot(name=parts[5], vendor=_short_vendor(parts[3])))
    return gpus


def parse_nvidia_smi(output: str) -> List[GpuSnapshot]:
    """GPUs from ``nvidia-smi --query-gpu=name,memory.total --format=csv,noheader,nounits``."""
    gpus = []
    for line in output.splitlines():
        parts = line.split(",")
        if len(parts) >= 2:
            gpus.append(GpuSnapshot(
                name=parts[0].strip(),
                vendor="NVIDIA",
                vram_bytes=_int(parts[1].strip()) * MIB,
            ))
    return gpus


def parse_vram(text: str) -> Optional[int]:
    """``"1536 MB"`` or ``"16 GB"`` to bytes."""
    parts = text.split()
    if len(parts) < 2:
        return None
    num = _float(parts[0], None)
    if num is None:
        return None
    unit = parts[1].upper()
    if unit == "GB":
        return int(num * GIB)
    if unit == "MB":
        return int(num * MIB)
    return None


def parse_system_profiler_gpus(json_text: str) -> List[GpuSnapshot]:
    """GPUs from ``system_profiler SPDisplaysDataType -json``."""
    parsed = _json(json_text)
    displays = parsed.get("SPDisplaysDataType") if isinstance(parsed, dict) else None
    if not isinstance(displays, list):
        return []

    gpus = []
    for gpu in displays:
        name = gpu.get("sppci_model") or "unknown"
        vendor = gpu.get("sppci_vendor")
        if not vendor:
            if "Apple" in name:
                vendor = "Apple"
            elif "AMD" in name or "Radeon" in name:
                vendor = "AMD"
            elif "Intel" in name:
                vendor = "Intel"
            else:
                vendor = "unknown"
        gpus.append(GpuSnapshot(
            name=name,
            vendor=vendor,
            vram_bytes=parse_vram(gpu.get("sppci_vram") or ""),
            metal_support=gpu.get("sppci_metal"),
        ))
    return gpus


def parse_pmset_battery(output: str) -> Optional[PowerSnapshot]:
    """Battery state from ``pmset -g batt``; None on machines without one."""
    if "No battery" in output or "InternalBattery" not in output:
        return None

    charge = None
    remaining = None
    for line in output.splitlines():
        if "InternalBattery" in line and charge is None:
            # "-InternalBattery-0 (id=1234)\t72%; charging; 1:23 remaining"
            fields = line.split("\t")
            if len(fields) > 1:
                charge = _float(fields[1].split("%")[0].strip(), None)
        if "remaining" in line and remaining is None:
            match = re.search(r"\b(\d+):(\d{2})\b", line)
            if match:
                remaining = int(match.group(1)) * 60 + int(match.group(2))

    return PowerSnapshot(
        on_battery="Battery Power" in output,
        charge_percent=charge,
        charging="; charging" in output,
        time_remaining_minutes=remaining,
    )


# ============================================================
# macOS memory, boot, network
# ============================================================

def vm_stat_pages(output: str, field: str) -> int:
    """Page count for ``field`` in ``vm_stat`` output."""
    for line in output.splitlines():
        if field in line:
            _, _, value = line.partition(":")
            return _int(value.strip().rstrip("."))
    return 0


def swapusage_bytes(output: str, field: str) -> int:
    """``total``/``used`` from ``sysctl -n vm.swapusage`` (``total = 2048.00M  used = 512.00M ...``)."""
    match = re.search(rf"{field}\s*=\s*([\d.]+)([MG])", output)
    if not match:
        return 0
    num = float(match.group(1))
    return int(num * (GIB if match.group(2) == "G" else MIB))


def parse_kern_boottime(output: str) -> Optional[datetime]:
    """``{ sec = 1700000000, usec = 0 } ...`` to a UTC datetime."""
    match = re.search(r"sec\s*=\s*(\d+)", output)
    if not match:
        return None
    return datetime.fromtimestamp(int(match.group(1)), tz=timezone.utc)


def classify_darwin_interface(name: str) -> str:
    if name.startswith(("en0", "en1")):
        return "ethernet/wifi"
    for prefix, kind in (("en", "ethernet"), ("lo", "loopback"), ("bridge", "bridge"),
                         ("utun", "vpn"), ("ipsec", "vpn"), ("awdl", "airdrop"),
                         ("llw", "low-latency-wlan"), ("ap", "access-point")):
        if name.startswith(prefix):
            return kind
    return "other"


def parse_ifconfig(output: str) -> List[InterfaceSnapshot]:
    """Interfaces from macOS ``ifconfig``."""
    interfaces = []
    current: Optional[Dict[str, Any]] = None

    def flush():
        if current is not None:
            interfaces.append(InterfaceSnapshot(
                interface_type=classify_darwin_interface(current["name"]), **current
            ))

    for line in output.splitlines():
        if line and not line[0].isspace() and ":" in line:
            flush()
            mtu = re.search(r"mtu (\d+)", line)
            current = {
                "name": line.split(":", 1)[0],
                "state": "up" if ("<UP" in line or ",UP" in line) else "down",
                "addresses": [],
                "mac": None,
                "mtu": int(mtu.group(1)) if mtu else None,
            }
        elif current is None:
            continue
        elif "inet6 " in line:
            addr = line.split("inet6 ", 1)[1].split()
            if addr:
                current["addresses"].append("ipv6:" + addr[0].split("%")[0])
        elif "inet " in line:
            addr = line.split("inet ", 1)[1].split()
            if addr:
                current["addresses"].append(addr[0])
        elif "ether " in line:
            mac = line.split("ether ", 1)[1].split()
            current["mac"] = mac[0] if mac else None
    flush()
    return interfaces


def parse_netstat_traffic(output: str) -> Dict[str, Tuple[int, int]]:
    """Interface -> (rx, tx) bytes from ``netstat -ib``; max across an interface's rows."""
    traffic: Dict[str, Tuple[int, int]] = {}
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 10:
            continue
        rx, tx = _int(parts[6]), _int(parts[9])
        prev_rx, prev_tx = traffic.get(parts[0], (0, 0))
        traffic[parts[0]] = (max(prev_rx, rx), max(prev_tx, tx))
    return traffic


def parse_netstat_routes(output: str) -> List[RouteSnapshot]:
    """Routes from ``netstat -rn``."""
    routes = []
    in_table = False
    for line in output.splitlines():
        if line.startswith(("Internet:", "Internet6:")):
            in_table = True
            continue
        if not in_table or line.startswith("Destination"):
            continue
        parts = line.split()
        if len(parts) >= 4:
            routes.append(RouteSnapshot(destination=parts[0], gateway=parts[1], interface=parts[-1]))
    return routes


def parse_lsof_listening(output: str, protocol: str) -> List[ListeningPort]:
    """Listening sockets from ``lsof -nP -F pcn``, one entry per port."""
    ports: List[ListeningPort] = []
    seen = set()
    pid = ""
    command = ""
    for line in output.splitlines():
        if not line:
            continue
        tag, value = line[0], line[1:]
        if tag == "p":
            pid = value
        elif tag == "c":
            command = value
        elif tag == "n":
            address, port = _split_host_port(value)
            if port is None or port in seen:
                continue
            seen.add(port)
            ports.append(ListeningPort(
                port=port,
                protocol=protocol,
                address=address,
                process=command or f"pid:{pid}",
            ))
    return ports


def parse_top_cpu_usage(output: str) -> float:
    """Busy percentage from ``top -l 1`` (``CPU usage: 5.26% user, 3.50% sys, 91.22% idle``)."""
    match = re.search(r"([\d.]+)%\s*idle", output)
    if not match:
        return 0.0
    return 100.0 - float(match.group(1))


# ============================================================
# Processes
# ============================================================

def parse_ps_aux(output: str) -> ProcessSnapshot:
    """Counts and top-5 lists by CPU and by memory from ``ps aux``."""
    total = running = zombie = 0
    procs = []
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 11:
            continue
        total += 1
        stat = parts[7]
        if stat.startswith("R"):
            running += 1
        if stat.startswith("Z"):
            zombie += 1
        procs.append(ProcessInfo(
            pid=_int(parts[1]),
            name=" ".join(parts[10:]),
            cpu_percent=_float(parts[2]),
            memory_percent=_float(parts[3]),
        ))

    by_cpu = sorted(procs, key=lambda p: p.cpu_percent, reverse=True)
    by_memory = sorted(by_cpu, key=lambda p: p.memory_percent, reverse=True)
    return ProcessSnapshot(
        total_processes=total,
        running_processes=running,
        zombie_processes=zombie,
        top_cpu=[p for p in by_cpu[:TOP_PROCESSES] if p.cpu_percent > 0],
        top_memory=[p for p in by_memory[:TOP_PROCESSES] if p.memory_percent > 0],
    )


# ============================================================
# Nix
# ============================================================

def parse_nix_version(output: Optional[str]) -> str:
    line = first_line(output)
    if not line:
        return "unknown"
    prefix = "nix (Nix) "
    return line[len(prefix):] if line.startswith(prefix) else line


def parse_du_bytes(output: Optional[str], unit: int = 1) -> int:
    """First column of ``du -sb`` (unit 1) or ``du -sk`` (unit KIB)."""
    parts = (output or "").split()
    return _int(parts[0]) * unit if parts else 0


def count_lines(output: Optional[str]) -> int:
    return len((output or "").splitlines())


def count_system_generations(listing: Iterable[str]) -> int:
    """Number of ``system-*`` entries in /nix/var/nix/profiles."""
    return sum(1 for name in listing if name.startswith("system-"))


def parse_nix_config(json_text: Optional[str]) -> Dict[str, Any]:
    """Substituters, trusted users, max-jobs and sandbox from ``nix show-config --json``."""
    parsed = _json(json_text)
    if not isinstance(parsed, dict):
        parsed = {}

    def value(key):
        entry = parsed.get(key)
        return entry.get("value") if isinstance(entry, dict) else None

    def words(key):
        v = value(key)
        if isinstance(v, list):
            return [str(item) for item in v]
        return v.split() if isinstance(v, str) else []

    max_jobs = value("max-jobs")
    if isinstance(max_jobs, bool):
        max_jobs = None
    elif isinstance(max_jobs, (int, float)):
        max_jobs = str(max_jobs)
    elif not isinstance(max_jobs, str):
        max_jobs = None

    sandbox = value("sandbox")
    if isinstance(sandbox, bool):
        sandbox_enabled = sandbox
    elif isinstance(sandbox, str):
        sandbox_enabled = sandbox in ("true", "relaxed")
    else:
        sandbox_enabled = False

    return {
        "substituters": words("substituters"),
        "trusted_users": words("trusted-users"),
        "max_jobs": max_jobs,
        "sandbox_enabled": sandbox_enabled,
    }


# ============================================================
# Kubernetes
# ============================================================

def parse_k8s_cpu(quantity: str) -> int:
    """CPU quantity to millicores: ``"250m"`` -> 250, ``"2"`` -> 2000."""
    if quantity.endswith("m"):
        return _int(quantity[:-1])
    return _int(quantity) * 1000


def parse_k8s_memory(quantity: str) -> int:
    """Memory quantity to bytes (``Gi``, ``Mi``, ``Ki`` or plain bytes)."""
    for suffix, unit in (("Gi", GIB), ("Mi", MIB), ("Ki", KIB)):
        if quantity.endswith(suffix):
            return _int(quantity[:-len(suffix)]) * unit
    return _int(quantity)


def parse_allocated_resources(describe_output: str) -> Tuple[int, int, int, int]:
    """
    (cpu requests, cpu limits, memory requests, memory limits) from the
    "Allocated resources" block of ``kubectl describe nodes``.
    """
    cpu_req = cpu_lim = mem_req = mem_lim = 0
    in_allocated = False
    for line in describe_output.splitlines():
        if "Allocated resources:" in line:
            in_allocated = True
            continue
        if not in_allocated:
            continue
        stripped = line.strip()
        parts = stripped.split()
        if stripped.startswith("cpu") and len(parts) >= 5:
            cpu_req, cpu_lim = parse_k8s_cpu(parts[1]), parse_k8s_cpu(parts[3])
        elif stripped.startswith("memory") and len(parts) >= 5:
            mem_req, mem_lim = parse_k8s_memory(parts[1]), parse_k8s_memory(parts[3])
        elif not stripped or line.startswith("Events:"):
            in_allocated = False
    return cpu_req, cpu_lim, mem_req, mem_lim


def parse_k8s_nodes(json_text: str) -> Tuple[bool, List[K8sCondition]]:
    """
    Readiness and conditions from ``kubectl get nodes -o json``.

    Ready if any node has a ``Ready=True`` condition; conditions are those of
    the first node.

    Raises:
        ValueError: the output is not a JSON object.
    """
    parsed = json.loads(json_text)
    if not isinstance(parsed, dict):
        raise ValueError("unexpected kubectl output")
    items = parsed.get("items") or []

    def conditions_of(node):
        return ((node or {}).get("status") or {}).get("conditions") or []

    ready = any(
        c.get("type") == "Ready" and c.get("status") == "True"
        for node in items
        for c in conditions_of(node)
    )
    conditions = [
        K8sCondition(
            condition_type=c.get("type") or "unknown",
            status=c.get("status") or "unknown",
            message=c.get("message"),
        )
        for c in (conditions_of(items[0]) if items else [])
    ]
    return ready, conditions


def count_k8s_items(json_text: Optional[str]) -> int:
    parsed = _json(json_text)
    if not isinstance(parsed, dict):
        return 0
    items = parsed.get("items")
    return len(items) if isinstance(items, list) else 0


# ============================================================
# Security
# ============================================================

def ssh_key_labels(authorized_keys: str) -> List[str]:
    """
    One label per key in an authorized_keys file: the key comment, or a
    ``<first 8 chars>...<type>`` stand-in when the key has no comment.
    """
    labels = []
    for line in authorized_keys.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) >= 3:
            labels.append(parts[2])
        elif len(parts) == 2:
            labels.append(f"{parts[1][:8]}...{parts[0]}")
        else:
            labels.append("unknown-key")
    return labels


def parse_sshd_policy(
    config_texts: Iterable[str],
    root_login: bool = True,
    password_auth: bool = True
) -> Tuple[bool, bool]:
    """
    (root login allowed, password auth enabled) from sshd_config contents.

    Later directives override earlier ones. Without a directive the
    permissive sshd defaults are assumed.
    """
    for text in config_texts:
        for line in text.splitlines():
            parts = line.strip().split()
            if len(parts) < 2 or parts[0].startswith("#"):
                continue
            keyword, value = parts[0].lower(), parts[1].lower()
            if keyword == "permitrootlogin":
                root_login = value != "no"
            elif keyword == "passwordauthentication":
                password_auth = value != "no"
    return root_login, password_auth


def count_nft_rules(ruleset: str) -> int:
    return sum(
        1 for line in ruleset.splitlines()
        if line.strip().startswith("rule") or "accept" in line or "drop" in line
    )


def count_iptables_rules(listing: str) -> int:
    count = 0
    for line in listing.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith(("Chain", "num", "target")):
            count += 1
    return count


def count_pf_rules(rules: str) -> int:
    return sum(1 for line in rules.splitlines() if line and not line.startswith("#"))
