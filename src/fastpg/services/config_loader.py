"""Configuration loader for fastpg."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from fastpg.errors import ProvisionError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "name",
        "port",
        "database",
        "user",
        "password",
        "dump",
        "dump_sha256",
        "allow_insecure_http",
        "command",
        "verbose",
        "log_file",
        "timeout",
        "detach",
        "quiet",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ProvisionError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ProvisionError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ProvisionError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ProvisionError(f"Unknown configuration keys: {unknown_list}")

        return parsed
