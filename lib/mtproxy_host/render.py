from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomli_w
import yaml

from .config_types import (
    DEFAULT_SERVICE,
    FAKE_CERT_LEN,
    MASK_PORT,
    METRICS_PORT,
    METRICS_WHITELIST,
    PROXY_USER,
    REPLAY_CHECK_LEN,
    UPSTREAM_WEIGHT,
    InstallPaths,
    ServiceConfig,
)

CONFIG_HEADER = "# Telemt MTProto Proxy configuration\n# Generated by mtproxy-setup\n\n"
CONFIG_MOUNT = "/etc/telemt.toml"


@dataclass(frozen=True)
class RenderedArtifacts:
    config: str
    compose: str


@dataclass(frozen=True)
class InstalledConfig:
    """What a persisted telemt.toml says about the running install."""

    port: int
    tls_domain: str
    raw_secret: str
    metrics_enabled: bool


def config_document(cfg: ServiceConfig) -> dict[str, Any]:
    server: dict[str, Any] = {
        "port": cfg.port,
        "listen_addr_ipv4": "0.0.0.0",
    }
    if cfg.metrics_enabled:
        server["metrics_port"] = METRICS_PORT
        server["metrics_whitelist"] = list(METRICS_WHITELIST)
    return {
        "show_link": [PROXY_USER],
        "general": {
            "prefer_ipv6": False,
            "fast_mode": True,
            "use_middle_proxy": False,
            "modes": {"classic": False, "secure": False, "tls": True},
        },
        "server": server,
        "censorship": {
            "tls_domain": cfg.tls_domain,
            "mask": True,
            "mask_port": MASK_PORT,
            "fake_cert_len": FAKE_CERT_LEN,
        },
        "access": {
            "replay_check_len": REPLAY_CHECK_LEN,
            "ignore_time_skew": False,
            "users": {PROXY_USER: cfg.secret.raw},
        },
        "upstreams": [{"type": "direct", "enabled": True, "weight": UPSTREAM_WEIGHT}],
    }


def compose_document(cfg: ServiceConfig) -> dict[str, Any]:
    ports = [f"{cfg.port}:{cfg.port}/tcp"]
    if cfg.metrics_enabled:
        ports.append(f"127.0.0.1:{METRICS_PORT}:{METRICS_PORT}/tcp")
    return {
        "services": {
            DEFAULT_SERVICE: {
                "image": cfg.image,
                "container_name": cfg.container_name,
                "restart": "unless-stopped",
                "environment": {"RUST_LOG": "info"},
                "volumes": [f"./{cfg.paths.config_path.name}:{CONFIG_MOUNT}:ro"],
                "ports": ports,
                "security_opt": ["no-new-privileges:true"],
                "cap_drop": ["ALL"],
                "cap_add": ["NET_BIND_SERVICE"],
                "read_only": True,
                "tmpfs": ["/tmp:rw,nosuid,nodev,noexec,size=16m"],
            }
        }
    }


def render_config(cfg: ServiceConfig) -> str:
    return CONFIG_HEADER + tomli_w.dumps(config_document(cfg))


def render_compose(cfg: ServiceConfig) -> str:
    dumped = yaml.safe_dump(compose_document(cfg), sort_keys=False, default_flow_style=False)
    return dumped if dumped.endswith("\n") else dumped + "\n"


def render(cfg: ServiceConfig) -> RenderedArtifacts:
    return RenderedArtifacts(config=render_config(cfg), compose=render_compose(cfg))


def write_artifacts(cfg: ServiceConfig, artifacts: RenderedArtifacts) -> list[Path]:
    paths = cfg.paths
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.config_path.write_text(artifacts.config, encoding="utf-8")
    paths.compose_path.write_text(artifacts.compose, encoding="utf-8")
    return [paths.config_path, paths.compose_path]


def load_installed(paths: InstallPaths) -> InstalledConfig | None:
    try:
        with open(paths.config_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return None
    server = data.get("server") or {}
    censorship = data.get("censorship") or {}
    access = data.get("access") or {}
    users = access.get("users") if isinstance(access, dict) else None
    raw_secret = ""
    if isinstance(users, dict):
        raw_secret = str(users.get(PROXY_USER) or next(iter(users.values()), "") or "")
    port = server.get("port") if isinstance(server, dict) else None
    domain = censorship.get("tls_domain") if isinstance(censorship, dict) else None
    if not isinstance(port, int) or not isinstance(domain, str) or not raw_secret:
        raise ValueError(f"Incomplete proxy config: {paths.config_path}")
    return InstalledConfig(
        port=port,
        tls_domain=domain,
        raw_secret=raw_secret,
        metrics_enabled="metrics_port" in server,
    )
