"""Subprocess-backed department process launcher."""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import Final

from .errors import ProcessSpawnError
from .interfaces import ProcessLauncherPort

logger = logging.getLogger(__name__)


class SubprocessProcessLauncher(ProcessLauncherPort):
    """Launch one OS process per department from a command template.

    Handles are `subprocess.Popen` objects; liveness uses `Popen.poll`, which
    never blocks.
    """

    _NAME_PLACEHOLDER: Final[str] = "{name}"

    def __init__(
        self,
        command_template: str,
        working_directory: str | None = None,
        terminate_timeout_seconds: float = 5.0,
    ):
        """Initialize subprocess launcher.

        Args:
            command_template: Shell-style command containing `{name}`.
            working_directory: Optional working directory for spawned processes.
            terminate_timeout_seconds: Grace period before a hard kill.

        Raises:
            ValueError: Raised when the template or timeout is invalid.
        """

        normalized_template = command_template.strip()
        if not normalized_template:
            raise ValueError("command_template must not be blank")
        if self._NAME_PLACEHOLDER not in normalized_template:
            raise ValueError("command_template must contain the {name} placeholder")
        if terminate_timeout_seconds <= 0:
            raise ValueError("terminate_timeout_seconds must be > 0")

        self._command_template = normalized_template
        self._working_directory = working_directory
        self._terminate_timeout_seconds = terminate_timeout_seconds

    def launcher_build_command(self, department_name: str) -> list[str]:
        """Render argv for one department.

        Args:
            department_name: Logical department name.

        Returns:
            list[str]: Command argv.

        Raises:
            ValueError: Raised when the department name is blank.
        """

        normalized_name = department_name.strip()
        if not normalized_name:
            raise ValueError("department_name must not be blank")
        return [
            argument.replace(self._NAME_PLACEHOLDER, normalized_name)
            for argument in shlex.split(self._command_template)
        ]

    def launcher_spawn(self, department_name: str) -> subprocess.Popen:
        command = self.launcher_build_command(department_name)
        try:
            process = subprocess.Popen(  # pylint: disable=consider-using-with
                command,
                cwd=self._working_directory,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, ValueError) as error:
            raise ProcessSpawnError(f"failed to spawn {department_name}: {error}", subject=department_name) from error

        logger.info("Spawned %s (PID: %s)", department_name, process.pid)
        return process

    def launcher_is_alive(self, handle: subprocess.Popen | None) -> bool:
        if handle is None:
            return False
        return handle.poll() is None

    def launcher_terminate(self, handle: subprocess.Popen | None) -> None:
        if handle is None or handle.poll() is not None:
            return

        handle.terminate()
        try:
            handle.wait(timeout=self._terminate_timeout_seconds)
        except subprocess.TimeoutExpired:
            logger.warning("PID %s ignored SIGTERM, killing", handle.pid)
            handle.kill()
            handle.wait(timeout=self._terminate_timeout_seconds)
