"""Server-under-test process lifecycle for storesmoke."""

import os
import subprocess
import time
from dataclasses import dataclass, field
from typing import IO, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from storesmoke.constants import (
    DEFAULT_CONNECTION_STRING_ENV,
    DEFAULT_LAUNCH_COMMANDS,
    DEFAULT_LAUNCH_GRACE_SECONDS,
    DEFAULT_STOP_TIMEOUT,
    RUNTIME_ARCHITECTURE_ENV,
    RUNTIME_FLAVOR_ENV,
)
from storesmoke.errors import SmokeTestError
from storesmoke.errors_catalog import actionable_error
from storesmoke.models import Variation


@dataclass
class HostProcess:
    """Handle to a launched server process."""

    variation_id: str
    command: List[str]
    popen: subprocess.Popen
    log_file: Optional[IO] = None
    stopped: bool = field(default=False)
    launched_at: float = field(default_factory=time.monotonic)

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.popen.poll()

    def has_exited(self) -> bool:
        return self.popen.poll() is not None


class DeploymentController:
    """Starts and stops the storefront for one variation at a time."""

    def __init__(
        self,
        logger,
        console,
        connection_string_factory,
        app_path: str = ".",
        launch_commands: Optional[Mapping[str, List[str]]] = None,
        connection_string_env: str = DEFAULT_CONNECTION_STRING_ENV,
        extra_env: Optional[Mapping[str, str]] = None,
        server_log_dir: Optional[str] = None,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        launch_grace_seconds: float = DEFAULT_LAUNCH_GRACE_SECONDS,
        subprocess_module=subprocess,
    ):
        self.logger = logger
        self.console = console
        self.connection_string_factory = connection_string_factory
        self.app_path = app_path
        self.launch_commands = dict(DEFAULT_LAUNCH_COMMANDS)
        self.launch_commands.update(launch_commands or {})
        self.connection_string_env = connection_string_env
        self.extra_env = dict(extra_env or {})
        self.server_log_dir = server_log_dir
        self.stop_timeout = stop_timeout
        self.launch_grace_seconds = launch_grace_seconds
        self.subprocess = subprocess_module

    def build_command(self, variation: Variation, database_name: str) -> List[str]:
        template = self.launch_commands.get(variation.host.value)
        if not template:
            raise SmokeTestError(actionable_error("unknown_launch_command", host=variation.host.value))

        parsed = urlparse(variation.base_url)
        values = {
            "app_path": self.app_path,
            "base_url": variation.base_url,
            "port": str(parsed.port or (443 if parsed.scheme == "https" else 80)),
            "host": variation.host.value,
            "runtime": variation.runtime.value,
            "architecture": variation.architecture.value,
            "database": database_name,
        }
        return [part.format(**values) for part in template]

    def build_environment(self, variation: Variation, database_name: str) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.extra_env)
        env[RUNTIME_FLAVOR_ENV] = variation.runtime.value
        env[RUNTIME_ARCHITECTURE_ENV] = variation.architecture.value
        env[self.connection_string_env] = self.connection_string_factory(database_name)
        return env

    def _open_log(self, variation: Variation, database_name: str) -> Optional[IO]:
        if not self.server_log_dir:
            return None
        os.makedirs(self.server_log_dir, exist_ok=True)
        log_path = os.path.join(self.server_log_dir, f"{variation.variation_id}-{database_name}.log")
        self.logger.info("Server output for %s goes to %s", variation.variation_id, log_path)
        return open(log_path, "w", encoding="utf-8")

    def start(self, variation: Variation, database_name: str) -> HostProcess:
        cmd = self.build_command(variation, database_name)
        env = self.build_environment(variation, database_name)

        self.logger.info(
            "Pointing %s at database '%s' via %s",
            variation.variation_id,
            database_name,
            self.connection_string_env,
        )
        self.console.print(f"[blue]Starting {variation.variation_id}...[/blue]")
        self.logger.debug("Launching: %s", " ".join(cmd))

        log_file = self._open_log(variation, database_name)
        output = log_file if log_file is not None else self.subprocess.DEVNULL

        try:
            popen = self.subprocess.Popen(
                cmd,
                cwd=self.app_path,
                env=env,
                stdout=output,
                stderr=self.subprocess.STDOUT,
            )
        except FileNotFoundError as exc:
            if log_file:
                log_file.close()
            raise SmokeTestError(actionable_error("command_not_found", command=cmd[0])) from exc
        except OSError as exc:
            if log_file:
                log_file.close()
            raise SmokeTestError(f"Failed to start server for {variation.variation_id}: {exc}") from exc

        handle = HostProcess(
            variation_id=variation.variation_id,
            command=cmd,
            popen=popen,
            log_file=log_file,
        )

        time.sleep(self.launch_grace_seconds)
        if handle.has_exited():
            returncode = handle.returncode
            self.stop(handle)
            raise SmokeTestError(
                actionable_error(
                    "server_exited",
                    variation=variation.variation_id,
                    returncode=str(returncode),
                )
            )

        self.logger.info("Started %s with process id %s", variation.variation_id, handle.pid)
        return handle

    def stop(self, handle: Optional[HostProcess]) -> bool:
        """Terminates the process, returning whether it is confirmed gone. Never raises."""
        if handle is None:
            self.logger.info("Host process never started successfully.")
            return True

        if handle.stopped:
            return True

        try:
            if handle.has_exited():
                self.logger.info("Host process %s already exited.", handle.pid)
                return True

            deadline = time.monotonic() + self.stop_timeout
            handle.popen.terminate()
            try:
                handle.popen.wait(timeout=self.stop_timeout / 2)
            except self.subprocess.TimeoutExpired:
                self.logger.warning("Host process %s ignored terminate, killing it.", handle.pid)
                handle.popen.kill()
                try:
                    handle.popen.wait(timeout=max(0.0, deadline - time.monotonic()))
                except self.subprocess.TimeoutExpired:
                    pass

            if not handle.has_exited():
                self.logger.warning("Unable to terminate the host process with process id %s", handle.pid)
                return False

            self.logger.info("Successfully terminated host process with process id %s", handle.pid)
            return True
        except OSError as exc:
            self.logger.warning("Error while stopping host process %s: %s", handle.pid, exc)
            return False
        finally:
            handle.stopped = handle.has_exited()
            if handle.log_file and handle.stopped:
                handle.log_file.close()
