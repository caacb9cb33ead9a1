from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

from .errors import InvalidInputError

DEFAULT_INSTALL_DIR = "/opt/telemt"
DEFAULT_IMAGE = "whn0thacked/telemt-docker:latest"
DEFAULT_CONTAINER = "telemt"
DEFAULT_SERVICE = "telemt"
DEFAULT_PORT = 443
DEFAULT_DOMAIN = "api.vk.com"

METRICS_PORT = 9090
METRICS_WHITELIST = ("127.0.0.1", "::1")
MASK_PORT = 443
FAKE_CERT_LEN = 2048
REPLAY_CHECK_LEN = 65536
PROXY_USER = "proxy"
UPSTREAM_WEIGHT = 10

CONFIG_FILENAME = "telemt.toml"
COMPOSE_FILENAME = "docker-compose.yml"


class ComposeCapability(str, enum.Enum):
    PLUGIN = "plugin"
    STANDALONE = "standalone"
    ABSENT = "absent"


class ServiceStatus(str, enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    ABSENT = "absent"


def validate_install_dir(raw: str | Path) -> str:
    """Reject install locations whose removal would wipe the host."""
    value = str(raw).strip()
    if not value:
        raise InvalidInputError("Install directory cannot be empty.")
    if Path(value).expanduser().resolve() == Path("/"):
        raise InvalidInputError("Install directory cannot be the filesystem root.")
    return value


@dataclass(frozen=True)
class InstallPaths:
    install_dir: str = DEFAULT_INSTALL_DIR

    def __post_init__(self) -> None:
        validate_install_dir(self.install_dir)

    @property
    def root(self) -> Path:
        return Path(self.install_dir).expanduser()

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def compose_path(self) -> Path:
        return self.root / COMPOSE_FILENAME


@dataclass(frozen=True)
class InstallRequest:
    port: int
    tls_domain: str
    metrics_enabled: bool = False

    def __post_init__(self) -> None:
        if not 1 <= int(self.port) <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}.")


@dataclass(frozen=True)
class Secret:
    random_bytes: bytes
    encoded_domain: str

    TAG = "ee"

    @property
    def raw(self) -> str:
        """The 32-hex-character credential stored in the service config."""
        return self.random_bytes.hex()

    @property
    def full(self) -> str:
        """Client-facing tagged secret: tag + random hex + domain hex."""
        return f"{self.TAG}{self.raw}{self.encoded_domain}"


@dataclass(frozen=True)
class ServiceConfig:
    request: InstallRequest
    secret: Secret
    paths: InstallPaths = field(default_factory=InstallPaths)
    image: str = DEFAULT_IMAGE
    container_name: str = DEFAULT_CONTAINER

    @property
    def port(self) -> int:
        return self.request.port

    @property
    def tls_domain(self) -> str:
        return self.request.tls_domain

    @property
    def metrics_enabled(self) -> bool:
        return self.request.metrics_enabled


@dataclass(frozen=True)
class HostState:
    port_in_use: bool
    competing_services: frozenset[str]
    runtime_present: bool
    compose: ComposeCapability


@dataclass(frozen=True)
class HealthWarning:
    check: str
    message: str


@dataclass
class HealthReport:
    port_listening: bool
    metrics_ok: bool | None = None
    warnings: list[HealthWarning] = field(default_factory=list)
    logs: str | None = None

    @property
    def healthy(self) -> bool:
        return not self.warnings
