"""Abstract daemon lifecycle over systemd / launchd."""

from checkpoint.daemon.lifecycle import (
    DaemonLifecycle,
    LaunchdLifecycle,
    NullLifecycle,
    ServiceSpec,
    ServiceState,
    SystemdUserLifecycle,
    select_lifecycle,
)

__all__ = [
    "DaemonLifecycle",
    "LaunchdLifecycle",
    "NullLifecycle",
    "ServiceSpec",
    "ServiceState",
    "SystemdUserLifecycle",
    "select_lifecycle",
]
