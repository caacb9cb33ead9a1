from __future__ import annotations

import typer

from mtproxy_host.config_types import validate_install_dir
from mtproxy_host.errors import InvalidInputError

from .. import console
from ..config import SETTING_KEYS, config_path, load_config, parse_port, save_config

app = typer.Typer(help="Manage operator defaults (~/.config/mtproxy-setup/config.toml).")


@app.command("show")
def show_settings():
    cfg = load_config()
    console.console.print(
        f"install_dir={cfg.install_dir} image={cfg.image} "
        f"default_domain={cfg.default_domain} default_port={cfg.default_port}",
        markup=False,
    )
    console.info(f"Config file: {config_path()}")


@app.command("get")
def get_setting(
        key: str = typer.Argument(..., help=f"Setting key ({', '.join(SETTING_KEYS)})."),
):
    cfg = load_config()
    k = key.strip().lower()
    if k not in SETTING_KEYS:
        console.err(f"Unknown setting: {key}")
        raise typer.Exit(code=2)
    console.console.print(str(getattr(cfg, k)), markup=False)


@app.command("set")
def set_setting(
        install_dir: str | None = typer.Option(None, "--install-dir", help="Default installation directory."),
        image: str | None = typer.Option(None, "--image", help="Default container image."),
        default_domain: str | None = typer.Option(None, "--default-domain", help="Default TLS masking domain."),
        default_port: str | None = typer.Option(None, "--default-port", help="Default proxy port."),
):
    cfg = load_config()
    if install_dir is not None:
        try:
            cfg.install_dir = validate_install_dir(install_dir.strip().rstrip("/") or "/")
        except InvalidInputError as exc:
            console.err(str(exc))
            raise typer.Exit(code=2)
    if image is not None:
        cfg.image = image.strip()
    if default_domain is not None:
        cfg.default_domain = default_domain.strip()
    if default_port is not None:
        port = parse_port(default_port)
        if port is None:
            console.err("default_port must be an integer between 1 and 65535.")
            raise typer.Exit(code=2)
        cfg.default_port = port
    saved = save_config(cfg)
    console.ok(f"Settings updated: {saved}")
