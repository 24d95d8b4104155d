import logging
import math
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests
from rich.console import Console
from rich.table import Table

from .constants import (
    DEFAULT_CONNECTION_STRING_ENV,
    DEFAULT_CONNECTION_STRING_TEMPLATE,
    DEFAULT_DATABASE_COMMAND_TIMEOUT,
    DEFAULT_DATABASE_HOST,
    DEFAULT_DATABASE_PORT,
    DEFAULT_DATABASE_PREFIX,
    DEFAULT_DATABASE_USER,
    DEFAULT_STARTUP_TIMEOUT,
    DEFAULT_STOP_TIMEOUT,
    READINESS_INTERVAL_SECONDS,
)
from .errors import ResponseError, SmokeTestError
from .models import RunContext, RunResult, RunStatus, ScenarioState, Variation
from .services.command_runner import CommandRunner
from .services.database import DatabaseProvisioner
from .services.deployment import DeploymentController
from .services.environment import HostEnvironment, SkipPolicy
from .services.http_session import SessionDriver
from .services.report import ReportService
from .services.scenario import StoreScenario

console = Console()
logger = logging.getLogger("storesmoke")


class SmokeTestRunner:
    def __init__(
        self,
        variations: Iterable[Variation],
        app_path: str = ".",
        parallel: int = 1,
        startup_timeout: float = DEFAULT_STARTUP_TIMEOUT,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        request_timeout: Optional[float] = None,
        running_on_mono: Optional[bool] = None,
        database_host: str = DEFAULT_DATABASE_HOST,
        database_port: int = DEFAULT_DATABASE_PORT,
        database_user: str = DEFAULT_DATABASE_USER,
        database_container: Optional[str] = None,
        database_prefix: str = DEFAULT_DATABASE_PREFIX,
        database_force_drop: bool = False,
        connection_string_env: str = DEFAULT_CONNECTION_STRING_ENV,
        connection_string_template: str = DEFAULT_CONNECTION_STRING_TEMPLATE,
        launch_commands: Optional[Mapping[str, List[str]]] = None,
        extra_env: Optional[Mapping[str, str]] = None,
        server_log_dir: Optional[str] = None,
        report_file: Optional[str] = None,
        host_environment: Optional[HostEnvironment] = None,
        session_factory=requests.Session,
    ):
        self.variations = list(variations)
        self.parallel = max(1, parallel)
        self.startup_timeout = startup_timeout
        self.request_timeout = request_timeout
        self.session_factory = session_factory

        self.host_environment = host_environment or HostEnvironment.detect(running_on_mono)
        self.skip_policy = SkipPolicy(self.host_environment)
        self.report_service = ReportService(report_file=report_file, logger=logger)
        self.command_runner = CommandRunner(logger=logger, default_timeout=DEFAULT_DATABASE_COMMAND_TIMEOUT)
        self.database_provisioner = DatabaseProvisioner(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
            host=database_host,
            port=database_port,
            user=database_user,
            container=database_container,
            prefix=database_prefix,
            force_drop=database_force_drop,
            connection_string_template=connection_string_template,
        )
        self.deployment_controller = DeploymentController(
            logger=logger,
            console=console,
            connection_string_factory=self.database_provisioner.connection_string,
            app_path=app_path,
            launch_commands=launch_commands,
            connection_string_env=connection_string_env,
            extra_env=extra_env,
            server_log_dir=server_log_dir,
            stop_timeout=stop_timeout,
        )

    @property
    def startup_retries(self) -> int:
        return max(1, math.ceil(self.startup_timeout / READINESS_INTERVAL_SECONDS))

    @contextmanager
    def _provisioned_database(self, database_name: str):
        try:
            self.database_provisioner.create(database_name)
            yield database_name
        finally:
            self.database_provisioner.drop(database_name)

    @contextmanager
    def _running_server(self, variation: Variation, database_name: str):
        handle = None
        try:
            handle = self.deployment_controller.start(variation, database_name)
            yield handle
        finally:
            self.deployment_controller.stop(handle)

    def _run_step(self, run_id: str, state: ScenarioState, callback):
        self.report_service.step_started(run_id, state.value)
        try:
            callback()
        except Exception as exc:
            self.report_service.step_finished(run_id, state.value, "failed", error=str(exc))
            raise
        self.report_service.step_finished(run_id, state.value, "success")

    def _execute(self, run_id: str, variation: Variation, database_name: str, result: RunResult):
        started_monotonic = time.monotonic()
        current_state = ScenarioState.INITIALIZING

        try:
            with self._provisioned_database(database_name):
                with self._running_server(variation, database_name) as process:
                    launched_monotonic = process.launched_at
                    with SessionDriver(
                        variation.base_url,
                        logger=logger,
                        session_factory=self.session_factory,
                        timeout=self.request_timeout,
                    ) as driver:
                        context = RunContext(
                            variation=variation,
                            database_name=database_name,
                            process=process,
                            driver=driver,
                            started_at=datetime.now(timezone.utc).isoformat(),
                            started_monotonic=launched_monotonic,
                        )
                        scenario = StoreScenario(context, logger=logger, startup_retries=self.startup_retries)
                        initialized_at = None

                        for state, action in scenario.steps():
                            current_state = state
                            self._run_step(run_id, state, action)
                            result.completed_states.append(state)

                            if state == ScenarioState.HOME_PAGE_VERIFIED:
                                initialized_at = time.monotonic()
                                result.cold_start_seconds = initialized_at - launched_monotonic
                                logger.info(
                                    "[Time]: Approximate time taken for application initialization: '%.2f' seconds",
                                    result.cold_start_seconds,
                                )

                        completed_at = time.monotonic()
                        current_state = ScenarioState.COMPLETED
                        result.completed_states.append(current_state)
                        result.scenario_seconds = completed_at - (initialized_at or launched_monotonic)
                        logger.info("[Time]: All tests completed in '%.2f' seconds", result.scenario_seconds)
                        result.status = RunStatus.PASSED
        finally:
            result.total_seconds = time.monotonic() - started_monotonic
            if result.status != RunStatus.PASSED:
                result.failed_step = current_state.value

    def run_variation(self, variation: Variation) -> RunResult:
        logger.info("Variation Details: %s", variation.describe())

        skip_reason = self.skip_policy.evaluate(variation)
        if skip_reason:
            logger.info(skip_reason)
            result = RunResult.skipped(variation, skip_reason)
            self.report_service.run_finished(uuid.uuid4().hex[:10], result.to_dict())
            return result

        run_id = uuid.uuid4().hex[:10]
        database_name = self.database_provisioner.create_database_name()
        result = RunResult(variation=variation, status=RunStatus.FAILED, database_name=database_name)
        self.report_service.run_started(run_id, variation.variation_id, variation.base_url)

        try:
            self._execute(run_id, variation, database_name, result)
        except ResponseError as exc:
            result.error = str(exc)
            result.status_code = exc.status_code
            result.response_body = exc.body
            console.print(f"[bold red]{variation.variation_id} failed at {result.failed_step}:[/bold red] {exc}")
            logger.error(
                "Step '%s' failed with status code %s: %s\nResponse body:\n%s",
                result.failed_step,
                exc.status_code,
                exc,
                exc.body,
            )
        except SmokeTestError as exc:
            result.error = str(exc)
            console.print(f"[bold red]{variation.variation_id} failed at {result.failed_step}:[/bold red] {exc}")
            logger.error("Step '%s' failed: %s", result.failed_step, exc)
        except requests.RequestException as exc:
            result.error = f"HTTP request failed: {exc}"
            console.print(f"[bold red]{variation.variation_id} failed at {result.failed_step}:[/bold red] {exc}")
            logger.error("Step '%s' failed with an HTTP error: %s", result.failed_step, exc)
        except Exception as exc:
            result.error = str(exc)
            console.print(f"[bold red]Unexpected error in {variation.variation_id}:[/bold red] {exc}")
            logger.exception("Unexpected error")
        finally:
            if result.status != RunStatus.PASSED:
                logger.info("Some tests failed. Cleanup already ran for %s.", variation.variation_id)
            logger.info(
                "[Time]: Total time taken for this test variation '%.2f' seconds",
                result.total_seconds or 0.0,
            )
            self.report_service.run_finished(run_id, result.to_dict())

        return result

    def run_all(self, variations: Optional[Iterable[Variation]] = None) -> List[RunResult]:
        selected = list(variations) if variations is not None else self.variations
        if self.parallel == 1 or len(selected) <= 1:
            return [self.run_variation(variation) for variation in selected]

        with ThreadPoolExecutor(max_workers=self.parallel) as executor:
            return list(executor.map(self.run_variation, selected))

    def print_summary(self, results: List[RunResult]):
        table = Table(title="Smoke test results")
        table.add_column("Variation")
        table.add_column("Status")
        table.add_column("Cold start (s)", justify="right")
        table.add_column("Scenario (s)", justify="right")
        table.add_column("Detail")

        colors = {RunStatus.PASSED: "green", RunStatus.FAILED: "red", RunStatus.SKIPPED: "yellow"}
        for result in results:
            detail = result.skip_reason or ""
            if result.status == RunStatus.FAILED:
                detail = f"{result.failed_step}: {result.error}"
            table.add_row(
                result.variation.variation_id,
                f"[{colors[result.status]}]{result.status.value}[/{colors[result.status]}]",
                _format_seconds(result.cold_start_seconds),
                _format_seconds(result.scenario_seconds),
                detail,
            )
        console.print(table)

    def run(self, variations: Optional[Iterable[Variation]] = None) -> int:
        exit_code = 1
        report_status = "failed"

        try:
            logger.info("Starting storesmoke...")
            self.report_service.start(asdict(self.host_environment))

            results = self.run_all(variations)
            self.print_summary(results)

            failed = [result for result in results if result.status == RunStatus.FAILED]
            if failed:
                logger.error("%s of %s variation(s) failed.", len(failed), len(results))
                return exit_code

            report_status = "success"
            exit_code = 0
            return exit_code
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            report_status = "aborted"
            return exit_code
        finally:
            self.report_service.finalize(report_status)


def _format_seconds(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.2f}"


def describe_variations(variations: Iterable[Variation]) -> List[Dict[str, Any]]:
    return [
        {
            "id": variation.variation_id,
            "base_url": variation.base_url,
            "run_on_mono": variation.run_on_mono,
            "tracks_redirect_uri": variation.tracks_redirect_uri,
            "clears_cookies_on_logout": variation.clears_cookies_on_logout,
        }
        for variation in variations
    ]
