"""Configuration loader for storesmoke."""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from storesmoke.constants import DEFAULT_VARIATIONS
from storesmoke.errors import SmokeTestError
from storesmoke.models import Variation


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults and variations."""

    SUPPORTED_KEYS = {
        "app_path",
        "variations",
        "only",
        "verbose",
        "log_file",
        "report_file",
        "parallel",
        "startup_timeout",
        "stop_timeout",
        "request_timeout",
        "running_on_mono",
        "database_host",
        "database_port",
        "database_user",
        "database_container",
        "database_prefix",
        "database_force_drop",
        "connection_string_env",
        "connection_string_template",
        "launch_commands",
        "extra_env",
        "server_log_dir",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise SmokeTestError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise SmokeTestError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise SmokeTestError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise SmokeTestError(f"Unknown configuration keys: {unknown_list}")

        for key in ("launch_commands", "extra_env"):
            if key in parsed and not isinstance(parsed[key], dict):
                raise SmokeTestError(f"`{key}` must be a mapping.")

        if "only" in parsed and not (
            isinstance(parsed["only"], list) and all(isinstance(item, str) for item in parsed["only"])
        ):
            raise SmokeTestError("`only` must be a list of variation ids.")

        if "launch_commands" in parsed:
            for host, command in parsed["launch_commands"].items():
                if not isinstance(command, list) or not command:
                    raise SmokeTestError(f"Launch command for `{host}` must be a non-empty list.")

        return parsed

    def load_variations(self, raw: Optional[Iterable[Any]]) -> List[Variation]:
        if raw is None:
            raw = DEFAULT_VARIATIONS
        if not isinstance(raw, list):
            raise SmokeTestError("`variations` must be a list of mappings.")
        return [Variation.from_mapping(item) for item in raw]
