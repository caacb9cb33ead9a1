from __future__ import annotations

import tomllib

import pytest
import yaml

from mtproxy_host.config_types import InstallPaths, InstallRequest, Secret, ServiceConfig
from mtproxy_host.render import load_installed, render, render_compose, render_config, write_artifacts
from mtproxy_host.secret import synthesize


def _config(tmp_path, *, port: int = 443, domain: str = "example.com", metrics: bool = False) -> ServiceConfig:
    return ServiceConfig(
        request=InstallRequest(port=port, tls_domain=domain, metrics_enabled=metrics),
        secret=synthesize(domain, token_bytes=lambda n: b"\xab" * n),
        paths=InstallPaths(str(tmp_path / "telemt")),
    )


def test_config_without_metrics(tmp_path) -> None:
    cfg = _config(tmp_path)
    text = render_config(cfg)
    assert text.startswith("# Telemt MTProto Proxy configuration\n")
    assert 'tls_domain = "example.com"' in text

    data = tomllib.loads(text)
    assert data["show_link"] == ["proxy"]
    assert data["general"]["modes"] == {"classic": False, "secure": False, "tls": True}
    assert data["server"] == {"port": 443, "listen_addr_ipv4": "0.0.0.0"}
    assert data["censorship"] == {
        "tls_domain": "example.com",
        "mask": True,
        "mask_port": 443,
        "fake_cert_len": 2048,
    }
    assert data["access"]["users"] == {"proxy": "ab" * 16}
    assert data["access"]["replay_check_len"] == 65536
    assert data["upstreams"] == [{"type": "direct", "enabled": True, "weight": 10}]
    assert len(cfg.secret.full) == len(Secret.TAG) + 32 + 2 * len("example.com")


def test_config_with_metrics(tmp_path) -> None:
    data = tomllib.loads(render_config(_config(tmp_path, metrics=True)))
    assert data["server"]["metrics_port"] == 9090
    assert data["server"]["metrics_whitelist"] == ["127.0.0.1", "::1"]


def test_compose_without_metrics(tmp_path) -> None:
    doc = yaml.safe_load(render_compose(_config(tmp_path, port=8443)))
    service = doc["services"]["telemt"]
    assert service["image"] == "whn0thacked/telemt-docker:latest"
    assert service["container_name"] == "telemt"
    assert service["restart"] == "unless-stopped"
    assert service["ports"] == ["8443:8443/tcp"]
    assert service["volumes"] == ["./telemt.toml:/etc/telemt.toml:ro"]
    assert service["cap_drop"] == ["ALL"]
    assert service["cap_add"] == ["NET_BIND_SERVICE"]
    assert service["read_only"] is True


def test_compose_metrics_bound_to_loopback(tmp_path) -> None:
    doc = yaml.safe_load(render_compose(_config(tmp_path, metrics=True)))
    ports = doc["services"]["telemt"]["ports"]
    assert ports == ["443:443/tcp", "127.0.0.1:9090:9090/tcp"]
    assert not any(p.startswith("9090") or p.startswith("0.0.0.0:9090") for p in ports)


def test_render_is_deterministic(tmp_path) -> None:
    cfg = _config(tmp_path, metrics=True)
    assert render(cfg) == render(cfg)


def test_write_and_load_installed(tmp_path) -> None:
    cfg = _config(tmp_path, port=8443, metrics=True)
    written = write_artifacts(cfg, render(cfg))
    assert written == [cfg.paths.config_path, cfg.paths.compose_path]
    assert all(path.is_file() for path in written)

    installed = load_installed(cfg.paths)
    assert installed is not None
    assert installed.port == 8443
    assert installed.tls_domain == "example.com"
    assert installed.raw_secret == cfg.secret.raw
    assert installed.metrics_enabled is True


def test_load_installed_missing_and_incomplete(tmp_path) -> None:
    paths = InstallPaths(str(tmp_path))
    assert load_installed(paths) is None

    paths.config_path.write_text("[server]\nport = 443\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_installed(paths)
