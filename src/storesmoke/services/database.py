"""Per-run PostgreSQL database provisioning for storesmoke."""

import uuid
from typing import List, Optional

from storesmoke.constants import (
    DEFAULT_CONNECTION_STRING_TEMPLATE,
    DEFAULT_DATABASE_HOST,
    DEFAULT_DATABASE_PORT,
    DEFAULT_DATABASE_PREFIX,
    DEFAULT_DATABASE_USER,
)
from storesmoke.errors import SmokeTestError
from storesmoke.errors_catalog import actionable_error


class DatabaseProvisioner:
    """Creates an isolated database before a run and drops it afterwards.

    Commands go through ``createdb``/``dropdb`` with ``-w`` so a server asking
    for a password fails instead of prompting. When ``container`` is set they
    are executed inside that container with ``docker exec`` so the harness does
    not need local PostgreSQL client tools. ``force_drop`` passes ``--force`` to
    ``dropdb`` (PostgreSQL 13+), terminating connections a stuck server holds.
    """

    def __init__(
        self,
        logger,
        console,
        command_runner,
        host: str = DEFAULT_DATABASE_HOST,
        port: int = DEFAULT_DATABASE_PORT,
        user: str = DEFAULT_DATABASE_USER,
        container: Optional[str] = None,
        prefix: str = DEFAULT_DATABASE_PREFIX,
        force_drop: bool = False,
        connection_string_template: str = DEFAULT_CONNECTION_STRING_TEMPLATE,
    ):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner
        self.host = host
        self.port = port
        self.user = user
        self.container = container
        self.prefix = prefix
        self.force_drop = force_drop
        self.connection_string_template = connection_string_template

    def create_database_name(self) -> str:
        return f"{self.prefix}{uuid.uuid4().hex}"

    def connection_string(self, database_name: str) -> str:
        return self.connection_string_template.format(
            database=database_name,
            host=self.host,
            port=self.port,
            user=self.user,
        )

    def _tool_cmd(self, tool: str) -> List[str]:
        prefix = ["docker", "exec", self.container] if self.container else []
        cmd = prefix + [tool, "-w", "-U", self.user]
        if not self.container:
            cmd += ["-h", self.host, "-p", str(self.port)]
        return cmd

    def create(self, database_name: str):
        self.logger.info("Creating database '%s'", database_name)
        try:
            self.command_runner.run(self._tool_cmd("createdb") + [database_name], check=True)
        except SmokeTestError as exc:
            raise SmokeTestError(
                f"{actionable_error('database_create_failed', database=database_name)}\n{exc}"
            ) from exc

    def drop(self, database_name: str) -> bool:
        self.console.print(f"[dim]Dropping database {database_name}...[/dim]")
        self.logger.info("Dropping database '%s'", database_name)

        options = ["--if-exists"]
        if self.force_drop:
            options.append("--force")

        try:
            result = self.command_runner.run(
                self._tool_cmd("dropdb") + options + [database_name],
                check=False,
            )
        except SmokeTestError as exc:
            self.logger.warning("Could not drop database '%s': %s", database_name, exc)
            return False

        if result.returncode != 0:
            self.logger.warning(
                "dropdb exited with %s for database '%s'. Open connections from a server that did not stop "
                "keep it alive; drop it manually or enable `database_force_drop`.",
                result.returncode,
                database_name,
            )
            return False

        return True
