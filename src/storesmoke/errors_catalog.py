"""Actionable error catalog for storesmoke."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "command_not_found": {
        "what": "Required command not found: {command}",
        "next": "Install it or point `launch_commands` at the right executable.",
    },
    "server_exited": {
        "what": "Server process for {variation} exited with code {returncode} before serving requests.",
        "next": "Run the launch command by hand in `app_path` or set `server_log_dir` to capture its output.",
    },
    "server_not_ready": {
        "what": "Server at {url} did not answer after {attempts} attempt(s).",
        "next": "Check the base URL of the variation or raise `--startup-timeout`.",
    },
    "unexpected_status": {
        "what": "Received status code {status_code} for {method} {url}.",
        "next": "Inspect the logged response body for the server-side error.",
    },
    "unknown_launch_command": {
        "what": "No launch command configured for host type `{host}`.",
        "next": "Add `{host}` under `launch_commands` in the config file.",
    },
    "invalid_variation": {
        "what": "Invalid variation definition: {detail}",
        "next": "Each variation needs `host`, `runtime`, `architecture` and `base_url`.",
    },
    "database_create_failed": {
        "what": "Could not create database {database}.",
        "next": "Check that PostgreSQL client tools are installed and the database server is reachable.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
