from __future__ import annotations


class SetupError(RuntimeError):
    """Base error for fatal setup failures."""

    label = "Setup failed"


class PrivilegeError(SetupError):
    label = "Insufficient privileges"


class MissingToolError(SetupError):
    label = "Missing tool"


class InvalidInputError(SetupError):
    label = "Invalid input"


class PortConflictError(SetupError):
    label = "Port conflict"

    def __init__(self, message: str, *, port: int, listeners: list[str] | None = None) -> None:
        super().__init__(message)
        self.port = port
        self.listeners = list(listeners or [])


class MissingDependencyError(SetupError):
    label = "Missing dependency"


class StartupError(SetupError):
    label = "Service failed to start"

    def __init__(self, message: str, *, logs: str | None = None) -> None:
        super().__init__(message)
        self.logs = logs or ""


class InstallCancelled(SetupError):
    label = "Cancelled"
