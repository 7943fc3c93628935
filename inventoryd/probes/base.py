"""
Platform probe capability interface.

``PlatformProbes`` has one coroutine per report section. Platform subclasses
implement the sections whose sources differ between operating systems
(hardware, OS, network, health, firewall); the package-store, cluster,
process, SSH key and sshd policy probes are shared here.

Every external command goes through ``run_cmd``, which enforces the probe
timeout and maps "not installed", "non-zero exit" and "timed out" alike to
``None`` so the calling probe falls back to its defaults.
"""

import asyncio
import logging
import os
import socket
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..errors import ProbeError
from ..report import (
    HardwareSnapshot,
    HealthMetrics,
    K8sSnapshot,
    NetworkSnapshot,
    NixSnapshot,
    OsSnapshot,
    ProcessSnapshot,
    SecuritySnapshot,
)
from . import parsers

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

SSHD_CONFIG = Path("/etc/ssh/sshd_config")
SSHD_CONFIG_DIR = Path("/etc/ssh/sshd_config.d")
NIX_PROFILES = Path("/nix/var/nix/profiles")
ZONEINFO_PREFIXES = ("/usr/share/zoneinfo/", "/var/db/timezone/zoneinfo/")


async def run_cmd(program: str, *args: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
    """
    Run ``program`` and return its stdout, or None if it could not be run,
    exited non-zero or exceeded ``timeout`` seconds (the process is killed).
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            program, *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.debug("cannot run %s: %s", program, exc)
        return None

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.debug("%s timed out after %ss", program, timeout)
        return None

    if proc.returncode != 0:
        return None
    return stdout.decode("utf-8", errors="replace")


async def read_text(path: Union[str, Path]) -> Optional[str]:
    """Contents of a text file, or None if it cannot be read."""
    try:
        return await asyncio.to_thread(Path(path).read_text, encoding="utf-8", errors="replace")
    except OSError:
        return None


async def list_dir(path: Union[str, Path]) -> List[str]:
    try:
        return await asyncio.to_thread(os.listdir, path)
    except OSError:
        return []


def local_hostname() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


class PlatformProbes(ABC):
    """
    One coroutine per report section.

    A probe returns its section or raises; the collector turns a raise into
    that section's default. ``kubernetes`` raises ``ProbeError`` when no
    cluster is reachable, which leaves the report's optional cluster section
    empty.
    """

    name = "generic"
    du_args: Tuple[str, ...] = ("-sb",)
    du_unit = 1

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, home: Optional[Union[str, Path]] = None):
        self.timeout = timeout
        self.home = Path(home) if home is not None else Path.home()

    async def cmd(self, program: str, *args: str) -> Optional[str]:
        return await run_cmd(program, *args, timeout=self.timeout)

    def hostname(self) -> str:
        return local_hostname()

    # ---- platform specific ----

    @abstractmethod
    async def hardware(self) -> HardwareSnapshot:
        ...

    @abstractmethod
    async def os(self) -> OsSnapshot:
        ...

    @abstractmethod
    async def network(self) -> NetworkSnapshot:
        ...

    @abstractmethod
    async def health(self) -> HealthMetrics:
        ...

    @abstractmethod
    async def firewall(self) -> Tuple[bool, int, Optional[str]]:
        """(active, rule count, backend name)"""

    # ---- shared ----

    async def nix(self) -> NixSnapshot:
        (version, du, path_info, roots, config_json, current_system,
         profiles, channels) = await asyncio.gather(
            self.cmd("nix", "--version"),
            self.cmd("du", *self.du_args, "/nix/store"),
            self.cmd("nix", "path-info", "--all"),
            self.cmd("nix-store", "--gc", "--print-roots"),
            self.cmd("nix", "show-config", "--json"),
            self.cmd("readlink", "-f", "/run/current-system"),
            list_dir(NIX_PROFILES),
            self.cmd("nix-channel", "--list"),
        )
        return NixSnapshot(
            nix_version=parsers.parse_nix_version(version),
            store_size_bytes=parsers.parse_du_bytes(du, self.du_unit),
            store_path_count=parsers.count_lines(path_info),
            gc_roots_count=parsers.count_lines(roots),
            current_system_path=current_system.strip() if current_system else None,
            system_generations=parsers.count_system_generations(profiles),
            channels=(channels or "").splitlines(),
            **parsers.parse_nix_config(config_json),
        )

    async def kubernetes(self) -> K8sSnapshot:
        nodes_json = await self.cmd("kubectl", "get", "nodes", "-o", "json", "--request-timeout=5s")
        if nodes_json is None:
            raise ProbeError("kubectl not available or cluster unreachable")
        node_ready, conditions = parsers.parse_k8s_nodes(nodes_json)

        k3s, pods, namespaces, describe, flux, helm = await asyncio.gather(
            self.cmd("k3s", "--version"),
            self.cmd("kubectl", "get", "pods", "-A", "-o", "json", "--request-timeout=5s"),
            self.cmd("kubectl", "get", "namespaces", "-o", "json", "--request-timeout=5s"),
            self.cmd("kubectl", "describe", "nodes", "--request-timeout=5s"),
            self.cmd("kubectl", "get", "ns", "flux-system", "--request-timeout=3s"),
            self.cmd("kubectl", "get", "helmreleases", "-A", "--no-headers", "--request-timeout=3s"),
        )
        cpu_req, cpu_lim, mem_req, mem_lim = parsers.parse_allocated_resources(describe or "")
        return K8sSnapshot(
            k3s_version=parsers.first_line(k3s),
            node_ready=node_ready,
            pod_count=parsers.count_k8s_items(pods),
            namespace_count=parsers.count_k8s_items(namespaces),
            conditions=conditions,
            cpu_requests_millis=cpu_req,
            cpu_limits_millis=cpu_lim,
            memory_requests_bytes=mem_req,
            memory_limits_bytes=mem_lim,
            flux_installed=True if flux is not None else None,
            helm_releases=parsers.count_lines(helm) if helm is not None else None,
        )

    async def processes(self) -> ProcessSnapshot:
        output = await self.cmd("ps", "aux")
        return parsers.parse_ps_aux(output or "")

    async def security(self) -> SecuritySnapshot:
        keys, firewall, sshd = await asyncio.gather(
            self.ssh_keys(),
            self.firewall(),
            self.sshd_policy(),
        )
        firewall_active, rules_count, backend = firewall
        sshd_running, root_login, password_auth = sshd
        return SecuritySnapshot(
            ssh_keys_deployed=keys,
            firewall_active=firewall_active,
            firewall_rules_count=rules_count,
            firewall_backend=backend,
            sshd_running=sshd_running,
            root_login_allowed=root_login,
            password_auth_enabled=password_auth,
        )

    async def ssh_keys(self) -> List[str]:
        content = await read_text(self.home / ".ssh" / "authorized_keys")
        return parsers.ssh_key_labels(content) if content else []

    async def sshd_policy(self) -> Tuple[bool, bool, bool]:
        """(sshd running, root login allowed, password auth enabled)"""
        pgrep = await self.cmd("pgrep", "-x", "sshd")
        running = bool(pgrep and pgrep.strip())

        paths = [SSHD_CONFIG]
        paths += sorted(SSHD_CONFIG_DIR / name for name in await list_dir(SSHD_CONFIG_DIR)
                        if name.endswith(".conf"))
        texts = [text for text in await asyncio.gather(*(read_text(p) for p in paths)) if text]
        root_login, password_auth = parsers.parse_sshd_policy(texts)
        return running, root_login, password_auth

    async def disk_usage(self):
        output = await self.cmd("df", "-k")
        return parsers.parse_df_usage(output or "")

    async def timezone(self) -> Optional[str]:
        tz = os.environ.get("TZ")
        if tz:
            return tz
        try:
            target = await asyncio.to_thread(os.readlink, "/etc/localtime")
        except OSError:
            target = ""
        for prefix in ZONEINFO_PREFIXES:
            if target.startswith(prefix):
                return target[len(prefix):]
        output = await self.cmd("date", "+%Z")
        return output.strip() if output else None
