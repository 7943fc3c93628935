"""
Declared node identity: schema, overlay loader and redaction.

The declared identity is the operator-authored desired state of a node. It is
read from one base YAML document plus any number of overlay fragments:

    ~/.config/inventoryd/node.yaml          base document (required)
    ~/.config/inventoryd/identity.d/*.yaml  overlays (optional)
    <extra overlay dirs>/*.yml|*.yaml       overlays (optional)

Overlay files from every directory are pooled and applied in filename order
(byte order of the file name, directory ignored), each one deep-merged onto
the untyped base tree (see ``merge.deep_merge``). Only the final merged tree
is decoded into ``DeclaredIdentity``; unknown keys are rejected at that point
rather than silently dropped.

Failure policy:
- unreadable or unparsable base document: ``IdentityError``
- unreadable, unparsable or non-mapping overlay: skipped with a warning
- merged tree that does not fit the schema: ``IdentityError``
"""

import json
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import IdentityError
from .logging_config import event_log
from .merge import deep_merge, remove_field_path

OVERLAY_SUFFIXES = (".yaml", ".yml")


class _Declared(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, coerce_numbers_to_str=True)


# ============================================================
# Schema
# ============================================================

class UserConfig(_Declared):
    name: str = ""
    uid: int = 0
    shell: str = "blzsh"
    email: str = ""


class TlsCertificate(_Declared):
    domain: str
    cert_file: Optional[str] = None
    key_file: Optional[str] = None
    issuer: Optional[str] = None


class SecretsConfig(_Declared):
    provider: str = "sops"
    age_key_file: Optional[str] = None
    ssh_authorized_keys: List[str] = Field(default_factory=list)
    tls_certificates: List[TlsCertificate] = Field(default_factory=list)
    age_keys: List[str] = Field(default_factory=list)


class CpuConfig(_Declared):
    vendor: str = ""
    cores: Optional[int] = None
    threads: Optional[int] = None
    model: Optional[str] = None


class MemoryConfig(_Declared):
    size_gb: float


class DiskConfig(_Declared):
    device: str
    size: Optional[str] = None
    disk_type: Optional[str] = None
    mount_point: Optional[str] = None


class GpuConfig(_Declared):
    vendor: str
    model: Optional[str] = None
    vram_mb: Optional[int] = None


class NicConfig(_Declared):
    name: str
    mac: Optional[str] = None
    speed_mbps: Optional[int] = None


class KernelConfig(_Declared):
    modules: List[str] = Field(default_factory=list)
    params: List[str] = Field(default_factory=list)


class HardwareConfig(_Declared):
    platform: str = ""
    cpu: CpuConfig = Field(default_factory=CpuConfig)
    memory: Optional[MemoryConfig] = None
    disks: List[DiskConfig] = Field(default_factory=list)
    gpus: List[GpuConfig] = Field(default_factory=list)
    network_interfaces: List[NicConfig] = Field(default_factory=list)
    kernel: KernelConfig = Field(default_factory=KernelConfig)
    filesystems: Any = None


class SshBuilderConfig(_Declared):
    hostname: str
    fqdn: str
    identity_file: Optional[str] = None


class CloudflareTunnelConfig(_Declared):
    user: str
    domain_suffix: str
    hosts: List[str] = Field(default_factory=list)


class SshConfig(_Declared):
    builder: Optional[SshBuilderConfig] = None
    cloudflare_tunnel: Optional[CloudflareTunnelConfig] = None


class NetworkInterface(_Declared):
    address: Optional[str] = None
    prefix_length: Optional[int] = None
    gateway: Optional[str] = None
    mac: Optional[str] = None
    mtu: Optional[int] = None


class FirewallConfig(_Declared):
    allowed_tcp_ports: List[int] = Field(default_factory=list)
    allowed_udp_ports: List[int] = Field(default_factory=list)
    rules: List[str] = Field(default_factory=list)


class VpnPeerConfig(_Declared):
    public_key: Optional[str] = None
    endpoint: Optional[str] = None
    allowed_ips: List[str] = Field(default_factory=list)


class NetworkConfig(_Declared):
    ssh: SshConfig = Field(default_factory=SshConfig)
    interfaces: Dict[str, NetworkInterface] = Field(default_factory=dict)
    hosts: Dict[str, str] = Field(default_factory=dict)
    firewall: FirewallConfig = Field(default_factory=FirewallConfig)
    dns_servers: List[str] = Field(default_factory=list)
    ntp_servers: List[str] = Field(default_factory=list)
    vpn: List[VpnPeerConfig] = Field(default_factory=list)


class AtticConfig(_Declared):
    token_file: Optional[str] = None
    netrc_file: Optional[str] = None


class NixNodeConfig(_Declared):
    trusted_users: List[str] = Field(default_factory=lambda: ["root"])
    attic: AtticConfig = Field(default_factory=AtticConfig)


class ClusterConfig(_Declared):
    name: str
    server: str


class KubernetesConfig(_Declared):
    role: Optional[str] = None
    cluster_cidr: Optional[str] = None
    service_cidr: Optional[str] = None
    clusters: List[ClusterConfig] = Field(default_factory=list)
    server_addr: Optional[str] = None
    node_labels: Dict[str, str] = Field(default_factory=dict)
    node_taints: List[str] = Field(default_factory=list)


class FluxcdConfig(_Declared):
    enable: bool = False
    source: str = ""
    reconcile: Any = None


class CustomService(_Declared):
    name: str
    port: Optional[int] = None
    health_endpoint: Optional[str] = None
    protocol: str = "http"


class ServicesConfig(_Declared):
    custom: List[CustomService] = Field(default_factory=list)


class OrgConfig(_Declared):
    name: str
    base_dir: str
    github_token_file: Optional[str] = None


class WorkspaceConfig(_Declared):
    orgs: List[OrgConfig] = Field(default_factory=list)
    zoekt_repos: List[str] = Field(default_factory=list)
    codesearch: Any = None


class GitUserConfig(_Declared):
    name: str = ""
    email: str = ""


class GitConfig(_Declared):
    user: GitUserConfig = Field(default_factory=GitUserConfig)


class MaintenanceWindow(_Declared):
    day: Optional[str] = None
    start_hour: Optional[int] = Field(default=None, ge=0, le=23)
    duration_hours: Optional[int] = Field(default=None, ge=0, le=255)


class FleetPeer(_Declared):
    name: str
    hostname: str
    ssh_user: str = "root"


class FleetConfig(_Declared):
    controller: Optional[str] = None
    environment: Optional[str] = None
    owner: Optional[str] = None
    team: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    maintenance_windows: List[MaintenanceWindow] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    peers: List[FleetPeer] = Field(default_factory=list)


class DeclaredIdentity(_Declared):
    """The operator-declared desired state of one node."""
    version: str
    profile: str
    hostname: str
    user: UserConfig = Field(default_factory=UserConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    hardware: HardwareConfig = Field(default_factory=HardwareConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    nix: NixNodeConfig = Field(default_factory=NixNodeConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    fluxcd: FluxcdConfig = Field(default_factory=FluxcdConfig)
    services: ServicesConfig = Field(default_factory=ServicesConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    fleet: FleetConfig = Field(default_factory=FleetConfig)

    def to_tree(self) -> Dict[str, Any]:
        """Untyped JSON-compatible tree, as consumed by redaction."""
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class RedactedIdentity:
    """
    A DeclaredIdentity with private fields structurally removed.

    ``data`` is the pruned tree; removed fields are absent rather than
    refilled with schema defaults or masked with placeholders.
    """
    data: Dict[str, Any]
    removed_paths: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def hostname(self) -> str:
        return self.data.get("hostname", "")

    def to_dict(self) -> Dict[str, Any]:
        return deepcopy(self.data)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.data, indent=indent)


# ============================================================
# Loader
# ============================================================

def _read_yaml(path: Path) -> Any:
    """Read and parse one YAML document; raises OSError or yaml.YAMLError."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _decode(tree: Any, what: str) -> DeclaredIdentity:
    try:
        return DeclaredIdentity.model_validate(tree)
    except ValidationError as exc:
        raise IdentityError(f"failed to deserialize {what}: {exc}") from exc


class IdentityLoader:
    """
    Loads the declared identity from a base document and overlay directories.

    Args:
        default_overlay_dir: overlay directory that is always consulted,
            before any caller-supplied directories. It may not exist.
    """

    def __init__(self, default_overlay_dir: Union[str, Path]):
        self.default_overlay_dir = Path(default_overlay_dir).expanduser()

    def load(self, path: Union[str, Path]) -> DeclaredIdentity:
        """Load the base document alone, without overlays."""
        path = Path(path).expanduser()
        tree = self._load_base(path)
        return _decode(tree, f"node identity from {path}")

    def overlay_files(self, extra_dirs: Iterable[Union[str, Path]] = ()) -> List[Path]:
        """
        Overlay files from the default and extra directories, in apply order.

        Files are pooled across directories and sorted by file name bytes,
        then by full path so identical names in two directories order
        deterministically. Missing directories are ignored.
        """
        dirs = [self.default_overlay_dir] + [Path(d).expanduser() for d in extra_dirs]
        found: List[Path] = []
        for directory in dirs:
            if not directory.is_dir():
                continue
            for entry in directory.iterdir():
                if entry.suffix in OVERLAY_SUFFIXES and entry.is_file():
                    found.append(entry)
        return sorted(found, key=lambda p: (os.fsencode(p.name), os.fsencode(str(p))))

    def load_with_overlays(
        self,
        base_path: Union[str, Path],
        extra_overlay_dirs: Sequence[Union[str, Path]] = ()
    ) -> DeclaredIdentity:
        """
        Load the base document and merge every overlay onto it.

        Raises:
            IdentityError: the base document is unreadable or unparsable, or
                the merged result does not decode into ``DeclaredIdentity``.
        """
        base_path = Path(base_path).expanduser()
        tree = self._load_base(base_path)

        applied = 0
        for overlay_path in self.overlay_files(extra_overlay_dirs):
            try:
                overlay = _read_yaml(overlay_path)
            except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
                event_log.overlay_skipped(str(overlay_path), str(exc))
                continue
            if overlay is None:
                continue
            if not isinstance(overlay, dict):
                event_log.overlay_skipped(
                    str(overlay_path),
                    f"top-level value is {type(overlay).__name__}, expected a mapping"
                )
                continue
            event_log.overlay_applied(str(overlay_path))
            tree = deep_merge(tree, overlay)
            applied += 1

        identity = _decode(tree, "merged identity")
        event_log.identity_loaded(str(base_path), applied)
        return identity

    def redact(
        self,
        identity: DeclaredIdentity,
        field_paths: Iterable[str]
    ) -> RedactedIdentity:
        """
        Remove each dot-separated path from the identity.

        Nonexistent paths are ignored. The pruned tree must still decode into
        the schema (removing a required field such as ``hostname`` raises
        ``IdentityError``).
        """
        paths = tuple(field_paths)
        tree = identity.to_tree()
        for path in paths:
            tree = remove_field_path(tree, path)
        _decode(tree, "redacted identity")
        return RedactedIdentity(data=tree, removed_paths=paths)

    def _load_base(self, path: Path) -> Any:
        try:
            return _read_yaml(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise IdentityError(f"failed to read base identity ({exc})", path) from exc
        except yaml.YAMLError as exc:
            raise IdentityError(f"failed to parse base identity ({exc})", path) from exc


def dump_yaml(data: Dict[str, Any]) -> str:
    """Render an identity tree as YAML in schema field order."""
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
