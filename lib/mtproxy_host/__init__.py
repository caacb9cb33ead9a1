from .errors import (
    InstallCancelled,
    InvalidInputError,
    MissingDependencyError,
    MissingToolError,
    PortConflictError,
    PrivilegeError,
    SetupError,
    StartupError,
)
from .orchestrator import InstallOptions, InstallResult, InstallState, Orchestrator

__all__ = [
    "InstallCancelled",
    "InvalidInputError",
    "InstallOptions",
    "InstallResult",
    "InstallState",
    "MissingDependencyError",
    "MissingToolError",
    "Orchestrator",
    "PortConflictError",
    "PrivilegeError",
    "SetupError",
    "StartupError",
]
