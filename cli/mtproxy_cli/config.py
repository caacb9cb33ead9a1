from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from typing import Any

import tomli_w
from platformdirs import user_config_dir

from mtproxy_host.config_types import (
    DEFAULT_DOMAIN,
    DEFAULT_IMAGE,
    DEFAULT_INSTALL_DIR,
    DEFAULT_PORT,
    validate_install_dir,
)

from . import console

APP_NAME = "mtproxy-setup"
CONFIG_FILENAME = "config.toml"
ENV_INSTALL_DIR = "MTPROXY_INSTALL_DIR"

SETTING_KEYS = ("install_dir", "image", "default_domain", "default_port")


@dataclass
class AppConfig:
    install_dir: str = DEFAULT_INSTALL_DIR
    image: str = DEFAULT_IMAGE
    default_domain: str = DEFAULT_DOMAIN
    default_port: int = DEFAULT_PORT


def config_path() -> str:
    return f"{user_config_dir(APP_NAME)}/{CONFIG_FILENAME}"


def default_config() -> AppConfig:
    return AppConfig()


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def to_toml(cfg: AppConfig) -> dict[str, Any]:
    return {
        "install_dir": cfg.install_dir,
        "image": cfg.image,
        "default_domain": cfg.default_domain,
        "default_port": cfg.default_port,
    }


def parse_port(raw: Any) -> int | None:
    try:
        port = int(raw)
    except (TypeError, ValueError):
        return None
    if not 1 <= port <= 65535:
        return None
    return port


def from_toml(data: dict[str, Any]) -> AppConfig:
    cfg = default_config()
    install_dir = str(data.get("install_dir") or "").strip()
    if install_dir:
        cfg.install_dir = install_dir
    image = str(data.get("image") or "").strip()
    if image:
        cfg.image = image
    domain = str(data.get("default_domain") or "").strip()
    if domain:
        cfg.default_domain = domain
    if "default_port" in data:
        port = parse_port(data.get("default_port"))
        if port is None:
            console.warn(f"Ignoring invalid default_port in {config_path()}: {data.get('default_port')!r}")
        else:
            cfg.default_port = port
    return cfg


def load_config() -> AppConfig:
    path = config_path()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return default_config()
    return from_toml(data)


def resolve_install_dir(cfg: AppConfig, flag: str | None = None) -> str:
    """Flag, then environment, then settings file; raises InvalidInputError for /."""
    if flag:
        return validate_install_dir(flag)
    env_value = os.getenv(ENV_INSTALL_DIR, "").strip()
    if env_value:
        return validate_install_dir(env_value)
    return validate_install_dir(cfg.install_dir or DEFAULT_INSTALL_DIR)


def save_config(cfg: AppConfig) -> str:
    path = config_path()
    ensure_parent_dir(path)
    with open(path, "wb") as f:
        f.write(tomli_w.dumps(to_toml(cfg)).encode("utf-8"))
    os.chmod(path, 0o600)
    return path
