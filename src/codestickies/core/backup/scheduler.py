"""Recurring backups via a launchd LaunchAgent plus an in-process timer.

The OS registration is the source of truth: ``reconcile()`` re-derives the
state from the plist on disk and ``launchctl list`` rather than trusting
in-memory flags, and every mutating call ends with it.
"""

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from loguru import logger

from codestickies.config import (
    AGENT_LABEL,
    DEFAULT_BACKUP_INTERVAL,
    INTERVAL_KEY,
    agent_plist_path,
    helper_script_path,
)
from codestickies.core.backup.launchd import (
    LaunchctlRegistry,
    default_helper_command,
    generate_plist,
    install_helper_script,
    read_interval,
    write_plist,
)
from codestickies.core.timer import RepeatingTimer
from codestickies.core.trigger import CommandTriggerChannel, TriggerBackup
from codestickies.errors import RegistrationError
from codestickies.protocols import JobRegistryProtocol, KeyValueProtocol, TriggerChannelProtocol


class _Cancellable(Protocol):
    def cancel(self) -> None: ...


def _start_timer(interval: float, callback: Callable[[], None]) -> _Cancellable:
    return RepeatingTimer(interval, callback, name="backup-fallback").start()


@dataclass(frozen=True)
class SchedulerState:
    """Observed auto-backup state."""

    enabled: bool
    interval: int | None


class BackupScheduler:
    """Enable, disable, and reconfigure recurring backups.

    ``db_path`` is the database the scheduled ``refresh`` reads; it is baked
    into the helper script unless ``helper_command`` overrides the command.
    """

    def __init__(
        self,
        storage: KeyValueProtocol,
        registry: JobRegistryProtocol | None = None,
        channel: TriggerChannelProtocol | None = None,
        *,
        label: str = AGENT_LABEL,
        plist_path: Path | None = None,
        script_path: Path | None = None,
        db_path: Path | None = None,
        helper_command: list[str] | None = None,
        timer_factory: Callable[[float, Callable[[], None]], _Cancellable] = _start_timer,
    ) -> None:
        self.label = label
        self._storage = storage
        self._registry = registry or LaunchctlRegistry()
        self._helper_command = helper_command or default_helper_command(db_path)
        self._channel = channel or CommandTriggerChannel(self._helper_command)
        self._plist_path = plist_path or agent_plist_path()
        self._script_path = script_path or helper_script_path()
        self._timer_factory = timer_factory
        self._timer: _Cancellable | None = None
        self._state = SchedulerState(enabled=False, interval=None)
        self.reconcile()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None

    def _stored_interval(self) -> int | None:
        raw = self._storage.get(INTERVAL_KEY)
        if raw is None:
            return None
        try:
            value = int(raw.decode("utf-8"))
        except ValueError:
            return None
        return value if value > 0 else None

    def reconcile(self) -> SchedulerState:
        """Re-derive the state from the OS registration and return it."""
        interval = read_interval(self._plist_path) or self._stored_interval()
        try:
            enabled = self._registry.is_registered(self.label)
        except RegistrationError as e:
            logger.warning("Failed to check auto-backup status: {}", e)
            enabled = False
        if not enabled:
            self._disarm()
        self._state = SchedulerState(enabled=enabled, interval=interval)
        return self._state

    def _fire(self) -> None:
        logger.debug("Fallback timer fired, triggering backup")
        self._channel.send(TriggerBackup())

    def _arm(self, interval: int) -> None:
        self._disarm()
        self._timer = self._timer_factory(float(interval), self._fire)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def arm(self) -> SchedulerState:
        """Arm the in-process timer if the OS job is registered.

        Used by long-running processes after start-up.
        """
        state = self.reconcile()
        if state.enabled:
            self._arm(state.interval or DEFAULT_BACKUP_INTERVAL)
        return state

    def _register(self, interval: int, *, install_script: bool) -> None:
        try:
            if self._plist_path.exists() and self._registry.is_registered(self.label):
                self._registry.unregister(self._plist_path)
            if install_script or not self._script_path.exists():
                install_helper_script(self._script_path, self._helper_command)
            plist = generate_plist(label=self.label, script_path=self._script_path, interval=interval)
            write_plist(self._plist_path, plist)
            self._registry.register(self._plist_path)
        except (RegistrationError, OSError) as e:
            logger.error("Failed to register auto-backup: {}", e)
            self._teardown()
            self._state = SchedulerState(enabled=False, interval=interval)
            if isinstance(e, RegistrationError):
                raise
            msg = f"Cannot install auto-backup job: {e}"
            raise RegistrationError(msg) from e
        self._arm(interval)

    def _teardown(self) -> RegistrationError | None:
        """Disarm, unload, and delete installed files. Returns any unload error."""
        self._disarm()
        error: RegistrationError | None = None
        if self._plist_path.exists():
            try:
                if self._registry.is_registered(self.label):
                    self._registry.unregister(self._plist_path)
            except RegistrationError as e:
                error = e
        self._plist_path.unlink(missing_ok=True)
        self._script_path.unlink(missing_ok=True)
        return error

    def set_interval(self, seconds: int) -> SchedulerState:
        """Record a new interval, re-registering the job if enabled.

        Raises:
            ValueError: If ``seconds`` is not positive.
            RegistrationError: If re-registration failed; auto-backup is then disabled.
        """
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds <= 0:
            msg = f"interval must be a positive number of seconds, got {seconds!r}"
            raise ValueError(msg)
        self._storage.set(INTERVAL_KEY, str(seconds).encode("utf-8"))
        if self.reconcile().enabled:
            self._register(seconds, install_script=False)
            logger.info("Auto-backup interval updated to {} seconds", seconds)
        return self.reconcile()

    def enable(self) -> SchedulerState:
        """Register the recurring job and arm the fallback timer.

        Raises:
            RegistrationError: If registration failed; auto-backup stays disabled.
        """
        interval = self.reconcile().interval or DEFAULT_BACKUP_INTERVAL
        self._storage.set(INTERVAL_KEY, str(interval).encode("utf-8"))
        self._register(interval, install_script=True)
        state = self.reconcile()
        if not state.enabled:
            self._teardown()
            msg = f"Job {self.label!r} is not listed after registration"
            raise RegistrationError(msg)
        logger.info("Auto-backup enabled every {} seconds", interval)
        return state

    def disable(self) -> SchedulerState:
        """Unregister the job, disarm the timer, and remove installed files.

        Raises:
            RegistrationError: If the job could not be unloaded. Files are
                removed regardless.
        """
        error = self._teardown()
        state = self.reconcile()
        if error is not None:
            logger.error("Failed to disable auto-backup: {}", error)
            raise error
        logger.info("Auto-backup disabled and cleaned up.")
        return state

    def shutdown(self) -> None:
        """Stop the in-process timer, leaving the OS job registered."""
        self._disarm()
