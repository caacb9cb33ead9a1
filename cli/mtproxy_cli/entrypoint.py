from __future__ import annotations

import sys

ROOT_FLAGS = {"-v", "--verbose"}
PASSTHROUGH = {"--uninstall", "--help", "--install-completion", "--show-completion"}


def rewrite_argv(args: list[str]) -> list[str]:
    """Route bare install options to the install command.

    ``mtproxy-setup --port 8443`` means ``mtproxy-setup install --port 8443``.
    """
    root = [a for a in args if a in ROOT_FLAGS]
    rest = [a for a in args if a not in ROOT_FLAGS]
    if rest and rest[0].startswith("-") and rest[0] not in PASSTHROUGH:
        rest = ["install", *rest]
    return [*root, *rest]


def main() -> None:
    from .main import app

    sys.argv = [sys.argv[0], *rewrite_argv(sys.argv[1:])]
    app()


if __name__ == "__main__":
    main()
