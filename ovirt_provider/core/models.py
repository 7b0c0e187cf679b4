"""Data models for the application."""
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Callable, Dict, FrozenSet, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, SecretStr, field_validator
from pydantic.alias_generators import to_camel

from .config import settings

logger = logging.getLogger(__name__)


class AuthRole(str, Enum):
    """Credential role configured on a manager."""
    DEFAULT = "default"
    METRICS = "metrics"


class ApiVersion(int, Enum):
    """Major version of the oVirt API."""
    V3 = 3
    V4 = 4


class Capability(str, Enum):
    """Optional platform operation gated by API version."""
    MIGRATE = "migrate"
    QUICK_STATS = "quick_stats"
    RECONFIGURE_DISKS = "reconfigure_disks"
    SNAPSHOTS = "snapshots"
    PUBLISH = "publish"


class PowerState(str, Enum):
    """Normalised power state of a VM or host."""
    ON = "on"
    OFF = "off"
    SUSPENDED = "suspended"
    UNKNOWN = "unknown"


POWER_STATES: Dict[str, PowerState] = {
    "up": PowerState.ON,
    "down": PowerState.OFF,
    "suspended": PowerState.SUSPENDED,
}


def calculate_power_state(raw_power_state: Optional[str]) -> PowerState:
    """Map an engine status string to a power state."""
    if not raw_power_state:
        return PowerState.UNKNOWN
    return POWER_STATES.get(str(raw_power_state).lower(), PowerState.UNKNOWN)


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class Endpoint(BaseModel):
    """Network location of an engine API (or of its history database)."""

    model_config = ConfigDict(validate_assignment=True)

    scheme: str = Field(default_factory=lambda: settings.ovirt_default_scheme)
    hostname: Optional[str] = None
    ipaddress: Optional[str] = None
    port: Optional[int] = None
    path: str = Field(default_factory=lambda: settings.ovirt_api_path)
    verify_ssl: bool = Field(default_factory=lambda: settings.ovirt_verify_ssl)
    certificate_authority: Optional[str] = None  # PEM bundle

    @field_validator("path", mode="before")
    @classmethod
    def default_path(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            return settings.ovirt_api_path
        return value

    @property
    def address(self) -> Optional[str]:
        """Address used to reach the engine, preferring the IP address."""
        return self.ipaddress or self.hostname


class Credentials(BaseModel):
    """User name and (possibly encrypted) password for one auth role."""

    userid: str
    password: SecretStr
    auth_role: AuthRole = AuthRole.DEFAULT

    def decrypted(self, decryptor: Optional[Callable[[str], str]] = None) -> "Credentials":
        """Return a copy with the password decrypted.

        Values the decryptor rejects are assumed to be stored in clear text
        and are kept as they are.
        """

        if decryptor is None:
            return self
        try:
            plain = decryptor(self.password.get_secret_value())
        except Exception:
            logger.debug("Password for %s is not encrypted; using stored value", self.userid)
            return self
        return self.model_copy(update={"password": SecretStr(plain)})


class VerifyOptions(BaseModel):
    """Options accepted by credential verification and connect calls.

    Accepts both snake_case and camelCase keys; unknown keys are rejected.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    skip_supported_api_validation: bool = False
    force_legacy_version: bool = False
    hostname_override: Optional[str] = None
    database_override: Optional[str] = None


class OvirtManager(BaseModel):
    """In-memory representation of a registered oVirt engine."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    name: str
    default_endpoint: Endpoint
    metrics_endpoint: Optional[Endpoint] = None
    authentications: Dict[AuthRole, Credentials] = Field(default_factory=dict)
    api_version: Optional[str] = None  # product version recorded by the last refresh
    graph_refresh: bool = Field(default_factory=lambda: settings.ovirt_graph_refresh)
    targeted_refresh: bool = Field(default_factory=lambda: settings.ovirt_targeted_refresh)
    history_database_name: str = Field(default_factory=lambda: settings.ovirt_history_database)

    _supported_features: Optional[FrozenSet[Capability]] = PrivateAttr(default=None)
    _cache_lock: Any = PrivateAttr(default_factory=threading.Lock)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)

    # Copies never share the feature cache lock.
    def __copy__(self) -> "OvirtManager":
        copied = super().__copy__()
        copied._cache_lock = threading.Lock()
        return copied

    def __deepcopy__(self, memo: Optional[Dict[int, Any]] = None) -> "OvirtManager":
        memo = {} if memo is None else memo
        memo[id(self._cache_lock)] = threading.Lock()
        return super().__deepcopy__(memo)

    def credentials_for(self, role: Union[AuthRole, str]) -> Optional[Credentials]:
        return self.authentications.get(AuthRole(role))

    def has_authentication_type(self, role: Union[AuthRole, str]) -> bool:
        return self.credentials_for(role) is not None

    def cached_supported_features(
        self, compute: Callable[[], FrozenSet[Capability]]
    ) -> FrozenSet[Capability]:
        """Return the memoized feature set, computing it on first access.

        Empty results are not memoized so that a manager which could not be
        probed is asked again on the next access.
        """

        with self._cache_lock:
            if self._supported_features is not None:
                return self._supported_features
            features = frozenset(compute())
            if features:
                self._supported_features = features
            return features

    def invalidate_supported_features(self) -> None:
        with self._cache_lock:
            self._supported_features = None


# Refresh targets. Frozen so they hash and can key refresh results.

class _TargetBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    manager_id: str
    name: Optional[str] = None

    @field_validator("manager_id", mode="before")
    @classmethod
    def coerce_manager_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)


class WholeManager(_TargetBase):
    """Refresh of everything the manager owns."""

    kind: Literal["manager"] = "manager"


class HostTarget(_TargetBase):
    """Refresh of a single hypervisor host."""

    kind: Literal["host"] = "host"
    ems_ref: str


class VmOrTemplateTarget(_TargetBase):
    """Refresh of a single VM or template."""

    kind: Literal["vm"] = "vm"
    ems_ref: str
    template: bool = False


class TargetGroup(_TargetBase):
    """Batch of sub-entity targets fetched together for one manager."""

    kind: Literal["group"] = "group"
    targets: Tuple["RefreshTarget", ...] = ()


RefreshTarget = Annotated[
    Union[WholeManager, HostTarget, VmOrTemplateTarget, TargetGroup],
    Field(discriminator="kind"),
]

TargetGroup.model_rebuild()


INVENTORY_KINDS: Tuple[str, ...] = ("cluster", "host", "vm", "template")


class RefreshPayload(BaseModel):
    """Raw inventory collected for one target.

    ``inventory`` maps every entity kind to its records. When the target was
    looked up and found missing, every slot is ``None`` and ``not_found`` is
    set, which is different from a kind that merely has no records.
    """

    inventory: Dict[str, Optional[List[Dict[str, Any]]]] = Field(default_factory=dict)
    api_version: Optional[str] = None
    not_found: bool = False

    def records(self, kind: str) -> List[Dict[str, Any]]:
        return list(self.inventory.get(kind) or [])


@dataclass
class RefreshResult:
    """Ordered mapping of refresh targets to their payloads for one manager."""

    manager_id: str
    entries: List[Tuple[Any, RefreshPayload]] = field(default_factory=list)

    def add(self, target: Any, payload: RefreshPayload) -> None:
        self.entries.append((target, payload))

    def targets(self) -> List[Any]:
        return [target for target, _ in self.entries]

    def items(self) -> Iterator[Tuple[Any, RefreshPayload]]:
        return iter(self.entries)

    def __getitem__(self, target: Any) -> RefreshPayload:
        for candidate, payload in self.entries:
            if candidate == target:
                return payload
        raise KeyError(target)

    def __len__(self) -> int:
        return len(self.entries)


# Parsed, persistable inventory

class ClusterRecord(BaseModel):
    """oVirt cluster."""
    ems_ref: str
    uid_ems: Optional[str] = None
    name: Optional[str] = None
    datacenter_ref: Optional[str] = None


class HostRecord(BaseModel):
    """oVirt hypervisor host."""
    ems_ref: str
    uid_ems: Optional[str] = None
    name: Optional[str] = None
    hostname: Optional[str] = None
    power_state: PowerState = PowerState.UNKNOWN
    cluster_ref: Optional[str] = None


class VmRecord(BaseModel):
    """oVirt virtual machine or template."""
    ems_ref: str
    uid_ems: Optional[str] = None
    name: Optional[str] = None
    template: bool = False
    power_state: PowerState = PowerState.UNKNOWN
    raw_power_state: Optional[str] = None
    memory_mb: Optional[int] = None
    cpu_total_cores: Optional[int] = None
    host_ref: Optional[str] = None
    cluster_ref: Optional[str] = None


class ParsedInventory(BaseModel):
    """Normalised inventory ready to be persisted by the platform."""
    api_version: Optional[str] = None
    not_found: bool = False
    clusters: List[ClusterRecord] = Field(default_factory=list)
    hosts: List[HostRecord] = Field(default_factory=list)
    vms: List[VmRecord] = Field(default_factory=list)
    templates: List[VmRecord] = Field(default_factory=list)
