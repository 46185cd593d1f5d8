"""launchd LaunchAgent files and the ``launchctl`` job registry."""

import os
import plistlib
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from codestickies.config import AGENT_STDERR_PATH, AGENT_STDOUT_PATH, LAUNCHCTL
from codestickies.errors import RegistrationError


class LaunchctlRegistry:
    """Job registry backed by ``launchctl``."""

    def __init__(self, launchctl: str = LAUNCHCTL) -> None:
        self.launchctl = launchctl

    def _run(self, *args: str) -> str:
        cmd = [self.launchctl, *args]
        logger.debug("Running: {}", " ".join(map(shlex.quote, cmd)))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            msg = f"Cannot run {self.launchctl}: {e}"
            raise RegistrationError(msg) from e
        output = result.stdout + result.stderr
        if result.returncode != 0:
            msg = f"launchctl {args[0]} failed ({result.returncode}): {output.strip()}"
            raise RegistrationError(msg)
        return output

    def register(self, plist_path: Path) -> None:
        self._run("load", str(plist_path))

    def unregister(self, plist_path: Path) -> None:
        self._run("unload", str(plist_path))

    def is_registered(self, label: str) -> bool:
        for line in self._run("list").splitlines():
            # Columns are PID, Status, Label.
            fields = line.split()
            if fields and fields[-1] == label:
                return True
        return False


def generate_plist(*, label: str, script_path: Path, interval: int) -> dict[str, Any]:
    """Return the LaunchAgent description for a recurring backup."""
    return {
        "Label": label,
        "ProgramArguments": [str(script_path)],
        "StartInterval": int(interval),
        "RunAtLoad": True,
        "StandardOutPath": AGENT_STDOUT_PATH,
        "StandardErrorPath": AGENT_STDERR_PATH,
    }


def write_plist(path: Path, plist: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        plistlib.dump(plist, f, fmt=plistlib.FMT_XML)


def read_interval(path: Path) -> int | None:
    """Return ``StartInterval`` from a LaunchAgent plist, or None."""
    try:
        with open(path, "rb") as f:
            plist = plistlib.load(f)
    except FileNotFoundError:
        return None
    except (OSError, plistlib.InvalidFileException, ValueError) as e:
        logger.warning("Failed to read current interval from {}: {}", path, e)
        return None
    interval = plist.get("StartInterval") if isinstance(plist, dict) else None
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        return None
    return interval


def default_helper_command(db_path: Path | None = None) -> list[str]:
    """Command the helper script runs: this interpreter's ``refresh`` entry point.

    launchd does not pass on the user's environment, so the database is
    named explicitly when given.
    """
    command = [sys.executable, "-m", "codestickies"]
    if db_path is not None:
        command += ["--db", str(Path(db_path).expanduser().resolve())]
    return [*command, "refresh"]


def install_helper_script(path: Path, command: list[str]) -> None:
    """Write an executable shell script that runs ``command``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.unlink(missing_ok=True)
    path.write_text(
        "#!/bin/sh\n" f"exec {' '.join(map(shlex.quote, command))}\n",
        encoding="utf-8",
    )
    os.chmod(path, 0o755)
