from __future__ import annotations

import typer

from .commands import install_cmd, settings_cmd, status_cmd, uninstall_cmd
from .logging_ import setup_logging


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="mtproxy-setup",
        help="Install and manage a Telemt MTProto proxy in Docker.",
        no_args_is_help=False,
    )

    app.command("install")(install_cmd.install)
    app.command("uninstall")(uninstall_cmd.uninstall)
    app.command("status")(status_cmd.status)
    app.command("link")(status_cmd.link)
    app.add_typer(settings_cmd.app, name="settings")

    @app.callback(invoke_without_command=True)
    def _main(
            ctx: typer.Context,
            verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logs."),
            uninstall: bool = typer.Option(False, "--uninstall", help="Same as the uninstall command."),
    ):
        setup_logging(verbose)
        if ctx.invoked_subcommand is not None:
            return
        if uninstall:
            uninstall_cmd.run_uninstall()
        else:
            install_cmd.run_install()
        raise typer.Exit(code=0)

    return app


app = _build_app()
