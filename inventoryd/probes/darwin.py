"""macOS probes: sysctl, vm_stat, sw_vers, ifconfig/netstat, lsof, pmset, system_profiler."""

import asyncio
from datetime import datetime, timezone
from typing import Optional, Tuple

from ..report import (
    HardwareSnapshot,
    HealthMetrics,
    NetworkSnapshot,
    OsSnapshot,
)
from . import parsers
from .base import PlatformProbes, read_text

SOCKETFILTERFW = "/usr/libexec/ApplicationFirewall/socketfilterfw"
DEFAULT_PAGE_SIZE = 16384


class DarwinProbes(PlatformProbes):
    name = "darwin"
    du_args = ("-sk",)
    du_unit = parsers.KIB

    async def sysctl(self, key: str) -> Optional[str]:
        output = await self.cmd("sysctl", "-n", key)
        return output.strip() if output else None

    async def memory(self) -> Tuple[int, int]:
        """(total, available) bytes; available counts free, inactive and speculative pages."""
        total, page_size, vm_stat = await asyncio.gather(
            self.sysctl("hw.memsize"),
            self.sysctl("hw.pagesize"),
            self.cmd("vm_stat"),
        )
        page_size = int(page_size) if page_size and page_size.isdigit() else DEFAULT_PAGE_SIZE
        vm_stat = vm_stat or ""
        pages = sum(
            parsers.vm_stat_pages(vm_stat, field)
            for field in ("Pages free", "Pages inactive", "Pages speculative")
        )
        return int(total) if total and total.isdigit() else 0, pages * page_size

    async def swap(self) -> Tuple[int, int]:
        """(total, used) bytes."""
        output = await self.sysctl("vm.swapusage") or ""
        return parsers.swapusage_bytes(output, "total"), parsers.swapusage_bytes(output, "used")

    # ---- hardware ----

    async def hardware(self) -> HardwareSnapshot:
        (model, vendor, arch, cores, threads, freq, cache, memory, swap, df, mount,
         profiler, pmset) = await asyncio.gather(
            self.sysctl("machdep.cpu.brand_string"),
            self.sysctl("machdep.cpu.vendor"),
            self.cmd("uname", "-m"),
            self.sysctl("hw.physicalcpu"),
            self.sysctl("hw.logicalcpu"),
            self.sysctl("hw.cpufrequency"),
            self.sysctl("hw.l2cachesize"),
            self.memory(),
            self.swap(),
            self.cmd("df", "-k"),
            self.cmd("mount"),
            self.cmd("system_profiler", "SPDisplaysDataType", "-json"),
            self.cmd("pmset", "-g", "batt"),
        )
        model = model or "unknown"
        if not vendor:
            # Apple Silicon has no machdep.cpu.vendor
            vendor = "Apple" if "Apple" in model else "Intel" if "Intel" in model else "unknown"
        ram_total, ram_available = memory
        swap_total, swap_used = swap

        return HardwareSnapshot(
            cpu_model=model,
            cpu_vendor=vendor,
            cpu_architecture=arch.strip() if arch else "unknown",
            cpu_cores=int(cores) if cores and cores.isdigit() else 0,
            cpu_threads=int(threads) if threads and threads.isdigit() else 0,
            cpu_frequency_mhz=int(freq) // 1_000_000 if freq and freq.isdigit() else None,
            cpu_cache_bytes=int(cache) if cache and cache.isdigit() else None,
            ram_total_bytes=ram_total,
            ram_available_bytes=ram_available,
            swap_total_bytes=swap_total,
            swap_used_bytes=swap_used,
            disks=parsers.parse_df_darwin(df or "", parsers.parse_mount_types(mount or "")),
            gpus=parsers.parse_system_profiler_gpus(profiler or ""),
            power=parsers.parse_pmset_battery(pmset) if pmset else None,
        )

    # ---- os ----

    async def os(self) -> OsSnapshot:
        version, build, product, kernel, arch, boottime, tz, features = await asyncio.gather(
            self.cmd("sw_vers", "-productVersion"),
            self.cmd("sw_vers", "-buildVersion"),
            self.cmd("sw_vers", "-productName"),
            self.cmd("uname", "-r"),
            self.cmd("uname", "-m"),
            self.sysctl("kern.boottime"),
            self.timezone(),
            self.sysctl("machdep.cpu.features"),
        )
        arch = arch.strip() if arch else "unknown"
        boot_time = parsers.parse_kern_boottime(boottime or "")
        uptime = 0
        if boot_time is not None:
            uptime = max(0, int((datetime.now(timezone.utc) - boot_time).total_seconds()))

        return OsSnapshot(
            distribution="macOS",
            version=version.strip() if version else "unknown",
            kernel_version=kernel.strip() if kernel else "unknown",
            architecture=arch,
            platform_triple=f"{'aarch64' if arch == 'arm64' else arch}-darwin",
            hostname=self.hostname(),
            product_name=product.strip() if product else None,
            build_id=build.strip() if build else None,
            boot_time=boot_time,
            uptime_secs=uptime,
            timezone=tz,
            virtualization="vm" if features and "VMM" in features else None,
        )

    # ---- network ----

    async def network(self) -> NetworkSnapshot:
        ifconfig, traffic, netstat, resolv, tcp, udp = await asyncio.gather(
            self.cmd("ifconfig"),
            self.cmd("netstat", "-ib"),
            self.cmd("netstat", "-rn"),
            read_text("/etc/resolv.conf"),
            self.cmd("lsof", "-iTCP", "-sTCP:LISTEN", "-nP", "-F", "pcn"),
            self.cmd("lsof", "-iUDP", "-nP", "-F", "pcn"),
        )
        interfaces = parsers.apply_traffic(
            parsers.parse_ifconfig(ifconfig or ""),
            parsers.parse_netstat_traffic(traffic or ""),
        )
        routes = parsers.parse_netstat_routes(netstat or "")
        ports = (parsers.parse_lsof_listening(tcp or "", "tcp")
                 + parsers.parse_lsof_listening(udp or "", "udp"))

        return NetworkSnapshot(
            hostname=self.hostname(),
            interfaces=interfaces,
            routes=routes,
            dns_resolvers=parsers.parse_resolv_conf(resolv or ""),
            default_gateway=parsers.default_gateway(routes),
            listening_ports=sorted(ports, key=lambda p: p.port),
        )

    # ---- health ----

    async def health(self) -> HealthMetrics:
        loadavg, memory, swap, top, max_files, disk_usage = await asyncio.gather(
            self.sysctl("vm.loadavg"),
            self.memory(),
            self.swap(),
            self.cmd("top", "-l", "1", "-n", "0", "-s", "0"),
            self.sysctl("kern.maxfiles"),
            self.disk_usage(),
        )
        ram_total, ram_available = memory
        swap_total, swap_used = swap
        load_1, load_5, load_15 = parsers.parse_loadavg(loadavg or "")

        return HealthMetrics(
            load_average_1m=load_1,
            load_average_5m=load_5,
            load_average_15m=load_15,
            memory_usage_percent=parsers.percent(ram_total - ram_available, ram_total),
            swap_usage_percent=parsers.percent(swap_used, swap_total),
            cpu_usage_percent=parsers.parse_top_cpu_usage(top or ""),
            disk_usage=disk_usage,
            max_file_descriptors=int(max_files) if max_files and max_files.isdigit() else None,
        )

    # ---- security ----

    async def firewall(self) -> Tuple[bool, int, Optional[str]]:
        alf, pf_info, pf_rules = await asyncio.gather(
            self.cmd(SOCKETFILTERFW, "--getglobalstate"),
            self.cmd("pfctl", "-s", "info"),
            self.cmd("pfctl", "-sr"),
        )
        alf_enabled = "enabled" in (alf or "")
        pf_enabled = "Status: Enabled" in (pf_info or "")

        if pf_enabled and alf_enabled:
            backend = "pf+alf"
        elif pf_enabled:
            backend = "pf"
        elif alf_enabled:
            backend = "alf"
        else:
            backend = None
        return alf_enabled or pf_enabled, parsers.count_pf_rules(pf_rules or ""), backend
