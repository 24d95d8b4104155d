import logging
import os

import click
from rich.logging import RichHandler

from .constants import (
    DEFAULT_CONNECTION_STRING_ENV,
    DEFAULT_CONNECTION_STRING_TEMPLATE,
    DEFAULT_DATABASE_HOST,
    DEFAULT_DATABASE_PORT,
    DEFAULT_DATABASE_PREFIX,
    DEFAULT_DATABASE_USER,
    DEFAULT_STARTUP_TIMEOUT,
    DEFAULT_STOP_TIMEOUT,
)
from .core import SmokeTestRunner, console, describe_variations
from .errors import SmokeTestError
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .storesmoke.yml if present.",
)
@click.option("--app-path", required=False, help="Directory of the storefront application to launch.")
@click.option(
    "--only",
    multiple=True,
    help="Run only the given variation id (e.g. kestrel-coreclr-x64). Repeatable.",
)
@click.option("--list-variations", is_flag=True, default=False, help="Print configured variations and exit.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option("--report-file", type=click.Path(), help="Write a JSON report of every run to this path.")
@click.option("--parallel", type=int, default=None, help="Number of variations to run at once (default: 1).")
@click.option(
    "--startup-timeout",
    type=float,
    default=None,
    help="Seconds to wait for the server's first response (default: 60).",
)
@click.option(
    "--stop-timeout",
    type=float,
    default=None,
    help="Seconds allowed to terminate the server process (default: 5).",
)
@click.option("--database-host", required=False, help="PostgreSQL host for per-run databases.")
@click.option("--database-port", type=int, default=None, help="PostgreSQL port for per-run databases.")
@click.option("--database-user", required=False, help="PostgreSQL user for per-run databases.")
@click.option(
    "--database-container",
    required=False,
    help="Run createdb/dropdb inside this Docker container instead of locally.",
)
@click.option(
    "--mono/--no-mono",
    "running_on_mono",
    default=None,
    help="Treat this machine as a Mono host. Detected from the platform by default.",
)
def main(
    config,
    app_path,
    only,
    list_variations,
    verbose,
    log_file,
    report_file,
    parallel,
    startup_timeout,
    stop_timeout,
    database_host,
    database_port,
    database_user,
    database_container,
    running_on_mono,
):
    """Run the storefront end-to-end smoke suite against every configured variation."""
    logger = logging.getLogger("storesmoke")

    config_loader = ConfigLoader()
    try:
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), ".storesmoke.yml")
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
        variations = config_loader.load_variations(config_values.get("variations"))
    except SmokeTestError as exc:
        raise click.ClickException(str(exc)) from exc

    only = list(only) or list(_resolve_option(None, config_values, "only", default=[]))
    if only:
        known = {variation.variation_id for variation in variations}
        unknown = sorted(set(only) - known)
        if unknown:
            raise click.ClickException(f"Unknown variation id(s): {', '.join(unknown)}")
        variations = [variation for variation in variations if variation.variation_id in only]

    if list_variations:
        for item in describe_variations(variations):
            console.print(item)
        return

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    request_timeout = _resolve_option(None, config_values, "request_timeout")

    runner = SmokeTestRunner(
        variations=variations,
        app_path=_resolve_option(app_path, config_values, "app_path", default=os.getcwd()),
        parallel=int(_resolve_option(parallel, config_values, "parallel", default=1)),
        startup_timeout=float(
            _resolve_option(startup_timeout, config_values, "startup_timeout", default=DEFAULT_STARTUP_TIMEOUT)
        ),
        stop_timeout=float(_resolve_option(stop_timeout, config_values, "stop_timeout", default=DEFAULT_STOP_TIMEOUT)),
        request_timeout=float(request_timeout) if request_timeout is not None else None,
        running_on_mono=_resolve_option(running_on_mono, config_values, "running_on_mono"),
        database_host=_resolve_option(database_host, config_values, "database_host", default=DEFAULT_DATABASE_HOST),
        database_port=int(
            _resolve_option(database_port, config_values, "database_port", default=DEFAULT_DATABASE_PORT)
        ),
        database_user=_resolve_option(database_user, config_values, "database_user", default=DEFAULT_DATABASE_USER),
        database_container=_resolve_option(database_container, config_values, "database_container"),
        database_prefix=_resolve_option(None, config_values, "database_prefix", default=DEFAULT_DATABASE_PREFIX),
        database_force_drop=bool(_resolve_option(None, config_values, "database_force_drop", default=False)),
        connection_string_env=_resolve_option(
            None, config_values, "connection_string_env", default=DEFAULT_CONNECTION_STRING_ENV
        ),
        connection_string_template=_resolve_option(
            None, config_values, "connection_string_template", default=DEFAULT_CONNECTION_STRING_TEMPLATE
        ),
        launch_commands=config_values.get("launch_commands"),
        extra_env={key: str(value) for key, value in (config_values.get("extra_env") or {}).items()},
        server_log_dir=config_values.get("server_log_dir"),
        report_file=_resolve_option(report_file, config_values, "report_file"),
    )

    raise SystemExit(runner.run())


if __name__ == "__main__":
    main()
