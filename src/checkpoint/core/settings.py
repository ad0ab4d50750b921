"""Process-wide settings for checkpoint.

``CheckpointSettings`` is constructed exactly once per invocation (by the CLI)
and passed down explicitly. No component below the CLI reads environment
variables; tests build settings pointing ``home`` at a temp directory.

Manifesto:
    Configuration should be explicit, validated, and environment-driven at
    the edge only.

    - **Pydantic validation:** Type-checked at startup, not mid-sweep
    - **Environment-driven:** ``CHECKPOINT_*`` env vars and ``.env`` files
    - **One state root:** Every shared file lives under ``home``
    - **Sensible defaults:** Timings match a laptop-friendly cadence

Features:
    - **CheckpointSettings:** State paths, watchdog timings, lock timings,
      execution pipeline command, notification cooldowns
    - **Derived paths:** lock/state/log dirs, heartbeat and status files

Examples:
    >>> from checkpoint.core.settings import CheckpointSettings
    >>> settings = CheckpointSettings(home="/tmp/cp", stale_threshold=120)
    >>> settings.heartbeat_file
    PosixPath('/tmp/cp/daemon.heartbeat')

Tags:
    settings, configuration, pydantic, environment, checkpoint
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CheckpointSettings(BaseSettings):
    """Settings shared by every checkpoint process.

    Fields
    ──────
    home                    : Root of all shared state (locks, heartbeats, registry)
    stale_threshold         : Heartbeat age (s) after which it counts as stale
    check_interval          : Watchdog poll interval (s)
    max_failures            : Consecutive stale/missing observations before restart
    force_grace_seconds     : How long ``force`` waits for a preempted owner to exit
    lock_poll_interval      : Poll step (s) while waiting on a lock
    lock_abandon_seconds    : Lock age after which a live owner is treated as hung
    registry_lock_wait      : Bounded wait (s) for the registry mutation lock
    orphan_cleanup_interval : Minimum seconds between orphan registry sweeps
    pipeline_command        : Execution pipeline argv, run inside the project dir
    pipeline_timeout        : Optional hard timeout (s) for one pipeline run
    pipeline_warning_marker : Output line prefix that marks a pipeline warning
    shutdown_timeout        : Max wait (s) for an in-flight run when a watcher stops
    config_marker           : File that must exist in a project for it to be backed up
    service_prefixes        : Daemon name prefixes the watchdog supervises
    watchdog_service        : The watchdog's own service name (never restarted)
    warning_cooldown        : Seconds between repeated warning notifications
    critical_cooldown       : Seconds between repeated critical notifications
    notifications           : Emit desktop notifications
    event_backend           : ``auto`` | ``native`` | ``poll`` change-event source
    poll_interval           : Polling backend scan interval (s)
    log_level               : Structlog log level
    json_logs               : Force JSON (True) or console (False) logs; None = auto
    """

    model_config = SettingsConfigDict(
        env_prefix="CHECKPOINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    home: Path = Field(
        default_factory=lambda: Path.home() / ".checkpoint",
        description="Root directory for locks, heartbeats, registry and state",
    )

    # ── Watchdog ─────────────────────────────────────────────────
    stale_threshold: int = Field(default=300, gt=0)
    check_interval: int = Field(default=60, gt=0)
    max_failures: int = Field(default=3, ge=1)

    # ── Locks ────────────────────────────────────────────────────
    force_grace_seconds: float = Field(default=5.0, ge=0)
    lock_poll_interval: float = Field(default=0.1, gt=0)
    lock_abandon_seconds: int | None = 6 * 3600
    registry_lock_wait: float = 5.0

    # ── Orchestration ────────────────────────────────────────────
    orphan_cleanup_interval: int = 86400
    pipeline_command: list[str] = Field(default_factory=lambda: ["backup-now"])
    pipeline_timeout: float | None = None
    pipeline_warning_marker: str | None = None
    shutdown_timeout: float = Field(default=600.0, gt=0)
    config_marker: str = ".backup-config.sh"

    # ── Daemons & notifications ──────────────────────────────────
    service_prefixes: list[str] = Field(default_factory=lambda: ["checkpoint", "claudecode"])
    watchdog_service: str = "checkpoint-watchdog"
    warning_cooldown: int = 4 * 3600
    critical_cooldown: int = 2 * 3600
    notifications: bool = True

    # ── Change events ────────────────────────────────────────────
    event_backend: Literal["auto", "native", "poll"] = "auto"
    poll_interval: float = 30.0

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("home", mode="after")
    @classmethod
    def _expand_home(cls, value: Path) -> Path:
        return value.expanduser()

    @property
    def lock_dir(self) -> Path:
        return self.home / "locks"

    @property
    def state_dir(self) -> Path:
        return self.home / "state"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    @property
    def registry_file(self) -> Path:
        return self.home / "projects.json"

    @property
    def heartbeat_file(self) -> Path:
        return self.home / "daemon.heartbeat"

    @property
    def watchdog_status_file(self) -> Path:
        return self.home / "watchdog.status"

    @property
    def watchdog_heartbeat_file(self) -> Path:
        return self.home / "watchdog.heartbeat"

    @property
    def watchdog_pid_file(self) -> Path:
        return self.home / "watchdog.pid"

    def project_state_dir(self, project_id: str) -> Path:
        """Per-project state directory (created lazily by its users)."""
        return self.state_dir / project_id
