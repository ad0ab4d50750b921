"""
Checkpoint - backup orchestration core.

Subpackages:
- checkpoint.core: Errors, logging, settings, atomic file IO, process identity
- checkpoint.locking: Crash-safe per-project run locks
- checkpoint.triggers: Debounced trigger coordinator and change-event sources
- checkpoint.heartbeat: Heartbeat publisher and watchdog monitor
- checkpoint.retention: Tiered snapshot retention and version history
- checkpoint.orchestrator: Project registry, single runs and global sweeps
- checkpoint.daemon: systemd / launchd service lifecycle
- checkpoint.cli: Typer command line (``checkpoint``)
"""

__version__ = "0.3.0"
