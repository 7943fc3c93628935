"""Linux probes: /proc, /sys, iproute2, ss, df, systemd, nftables/iptables."""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from ..report import (
    GpuSnapshot,
    HardwareSnapshot,
    HealthMetrics,
    InterfaceSnapshot,
    NetworkSnapshot,
    OsSnapshot,
    PowerSnapshot,
)
from . import parsers
from .base import PlatformProbes, read_text

BATTERY = Path("/sys/class/power_supply/BAT0")
CPU_SAMPLE_SECONDS = 0.2


class LinuxProbes(PlatformProbes):
    name = "linux"

    # ---- hardware ----

    async def hardware(self) -> HardwareSnapshot:
        cpuinfo, meminfo, arch, df, gpus, power = await asyncio.gather(
            read_text("/proc/cpuinfo"),
            read_text("/proc/meminfo"),
            self.cmd("uname", "-m"),
            self.cmd("df", "-kT"),
            self.gpus(),
            self.power(),
        )
        meminfo = meminfo or ""
        swap_total = parsers.meminfo_kb(meminfo, "SwapTotal") * parsers.KIB
        swap_free = parsers.meminfo_kb(meminfo, "SwapFree") * parsers.KIB
        return HardwareSnapshot(
            cpu_architecture=arch.strip() if arch else "unknown",
            ram_total_bytes=parsers.meminfo_kb(meminfo, "MemTotal") * parsers.KIB,
            ram_available_bytes=parsers.meminfo_kb(meminfo, "MemAvailable") * parsers.KIB,
            swap_total_bytes=swap_total,
            swap_used_bytes=max(0, swap_total - swap_free),
            disks=parsers.parse_df_linux(df or ""),
            gpus=gpus,
            power=power,
            **parsers.parse_cpuinfo(cpuinfo or ""),
        )

    async def gpus(self) -> List[GpuSnapshot]:
        gpus = parsers.parse_lspci_gpus(await self.cmd("lspci", "-mm") or "")
        if gpus:
            return gpus
        nvidia = await self.cmd(
            "nvidia-smi", "--query-gpu=name,memory.total", "--format=csv,noheader,nounits"
        )
        return parsers.parse_nvidia_smi(nvidia or "")

    async def power(self) -> Optional[PowerSnapshot]:
        if not BATTERY.exists():
            return None
        status, capacity = await asyncio.gather(
            read_text(BATTERY / "status"),
            read_text(BATTERY / "capacity"),
        )
        status = (status or "").strip()
        charge = None
        if capacity and capacity.strip().isdigit():
            charge = float(capacity.strip())
        return PowerSnapshot(
            on_battery=status == "Discharging",
            charge_percent=charge,
            charging=status == "Charging",
        )

    # ---- os ----

    async def os(self) -> OsSnapshot:
        (os_release, kernel, arch, uptime, tz, systemctl, proc_version,
         virtualization) = await asyncio.gather(
            read_text("/etc/os-release"),
            self.cmd("uname", "-r"),
            self.cmd("uname", "-m"),
            read_text("/proc/uptime"),
            self.timezone(),
            self.cmd("systemctl", "--version"),
            read_text("/proc/version"),
            self.virtualization(),
        )
        release = parsers.parse_os_release(os_release or "")
        uptime_secs = parsers.parse_uptime(uptime or "")
        boot_time = None
        if uptime_secs > 0:
            boot_time = datetime.now(timezone.utc) - timedelta(seconds=uptime_secs)
        arch = arch.strip() if arch else "unknown"

        return OsSnapshot(
            distribution=release.get("NAME", "Linux"),
            version=release.get("VERSION_ID", "unknown"),
            kernel_version=kernel.strip() if kernel else "unknown",
            architecture=arch,
            platform_triple=f"{arch}-linux",
            hostname=self.hostname(),
            product_name=release.get("PRETTY_NAME"),
            build_id=release.get("BUILD_ID"),
            systemd_version=parsers.systemd_version(systemctl),
            boot_time=boot_time,
            uptime_secs=uptime_secs,
            timezone=tz,
            is_wsl=parsers.is_wsl(proc_version or ""),
            virtualization=virtualization,
        )

    async def virtualization(self) -> Optional[str]:
        detected = await self.cmd("systemd-detect-virt")
        if detected and detected.strip() != "none":
            return detected.strip()

        cpuinfo = await read_text("/proc/cpuinfo")
        if cpuinfo and "hypervisor" in cpuinfo:
            product = await read_text("/sys/class/dmi/id/product_name")
            return parsers.virtualization_from_dmi(product or "")

        if Path("/.dockerenv").exists():
            return "docker"
        cgroup = await read_text("/proc/1/cgroup")
        return parsers.container_from_cgroup(cgroup or "")

    # ---- network ----

    async def network(self) -> NetworkSnapshot:
        ip_addr, ip_route, resolv, net_dev, tcp, udp = await asyncio.gather(
            self.cmd("ip", "-j", "addr"),
            self.cmd("ip", "-j", "route"),
            read_text("/etc/resolv.conf"),
            read_text("/proc/net/dev"),
            self.cmd("ss", "-tlnp"),
            self.cmd("ss", "-ulnp"),
        )
        interfaces = parsers.parse_ip_addr(ip_addr or "")
        interfaces = parsers.apply_traffic(interfaces, parsers.parse_proc_net_dev(net_dev or ""))
        interfaces = await self._with_link_speed(interfaces)
        routes = parsers.parse_ip_route(ip_route or "")
        ports = (parsers.parse_ss_listening(tcp or "", "tcp")
                 + parsers.parse_ss_listening(udp or "", "udp"))

        return NetworkSnapshot(
            hostname=self.hostname(),
            interfaces=interfaces,
            routes=routes,
            dns_resolvers=parsers.parse_resolv_conf(resolv or ""),
            default_gateway=parsers.default_gateway(routes),
            listening_ports=sorted(ports, key=lambda p: p.port),
        )

    async def _with_link_speed(self, interfaces: List[InterfaceSnapshot]) -> List[InterfaceSnapshot]:
        speeds = await asyncio.gather(
            *(read_text(f"/sys/class/net/{iface.name}/speed") for iface in interfaces)
        )
        result = []
        for iface, speed in zip(interfaces, speeds):
            mbps = speed.strip() if speed else ""
            if mbps.isdigit() and 0 < int(mbps) < 100_000:
                iface = iface.model_copy(update={"speed_mbps": int(mbps)})
            result.append(iface)
        return result

    # ---- health ----

    async def health(self) -> HealthMetrics:
        loadavg, meminfo, file_nr, cpu_usage, disk_usage = await asyncio.gather(
            read_text("/proc/loadavg"),
            read_text("/proc/meminfo"),
            read_text("/proc/sys/fs/file-nr"),
            self.cpu_usage(),
            self.disk_usage(),
        )
        meminfo = meminfo or ""
        ram_total = parsers.meminfo_kb(meminfo, "MemTotal")
        ram_available = parsers.meminfo_kb(meminfo, "MemAvailable")
        swap_total = parsers.meminfo_kb(meminfo, "SwapTotal")
        swap_free = parsers.meminfo_kb(meminfo, "SwapFree")
        load_1, load_5, load_15 = parsers.parse_loadavg(loadavg or "")
        open_fds, max_fds = parsers.parse_file_nr(file_nr or "")

        return HealthMetrics(
            load_average_1m=load_1,
            load_average_5m=load_5,
            load_average_15m=load_15,
            memory_usage_percent=parsers.percent(ram_total - ram_available, ram_total),
            swap_usage_percent=parsers.percent(max(0, swap_total - swap_free), swap_total),
            cpu_usage_percent=cpu_usage,
            disk_usage=disk_usage,
            open_file_descriptors=open_fds,
            max_file_descriptors=max_fds,
        )

    async def cpu_usage(self) -> float:
        """Busy percentage over a short /proc/stat sampling window."""
        before = parsers.parse_cpu_stat(await read_text("/proc/stat") or "")
        await asyncio.sleep(CPU_SAMPLE_SECONDS)
        after = parsers.parse_cpu_stat(await read_text("/proc/stat") or "")
        return parsers.cpu_usage_between(before, after)

    # ---- security ----

    async def firewall(self) -> Tuple[bool, int, Optional[str]]:
        nft = await self.cmd("nft", "list", "ruleset")
        if nft is not None:
            rules = parsers.count_nft_rules(nft)
            return rules > 0, rules, "nftables"

        iptables = await self.cmd("iptables", "-L", "-n", "--line-numbers")
        if iptables is not None:
            rules = parsers.count_iptables_rules(iptables)
            return rules > 0, rules, "iptables"

        return False, 0, None
