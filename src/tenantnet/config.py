import os
import re
from pathlib import Path

import yaml


DEFAULT_CONFIG = Path("tenantnet.yml")

DEFAULTS = {
    "powershell": "pwsh",
}

PROVISION_KEYS = ("vmm_server", "logical_network", "external_ip_pool")


class ConfigError(Exception):
    pass


def load_config(path: Path | None = None) -> dict:
    """Load settings from a YAML file, falling back to defaults if the default file is absent."""
    explicit = path is not None
    path = Path(path) if explicit else DEFAULT_CONFIG

    if not path.exists():
        if explicit:
            raise ConfigError(f"Config file '{path}' not found")
        return dict(DEFAULTS)

    with open(path) as f:
        config = yaml.safe_load(f)
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigError(f"Invalid config file: {path}")
    return interpolate_variables({**DEFAULTS, **config})


def validate_config(config: dict) -> None:
    """Check that the settings needed to provision a tenant network are present."""
    for key in PROVISION_KEYS:
        if not config.get(key):
            raise ConfigError(f"Config missing required field: '{key}'")


def interpolate_variables(config: dict) -> dict:
    """Interpolate ${VAR} references from the environment."""

    def _replace(obj):
        if isinstance(obj, str):
            def _sub(m):
                env_val = os.environ.get(m.group(1))
                if env_val is not None:
                    return env_val
                return m.group(0)  # leave unresolved
            return re.sub(r"\$\{(\w+)\}", _sub, obj)
        elif isinstance(obj, dict):
            return {k: _replace(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [_replace(item) for item in obj]
        return obj

    return _replace(config)


def transcripts_root(config: dict, root: str | None = None) -> Path:
    """Resolve the transcripts folder from an explicit option or the config file."""
    value = root or config.get("transcripts_root")
    if not value:
        raise ConfigError(
            "No transcripts folder given. Pass --root or set 'transcripts_root' in the config."
        )
    return Path(value)


def write_scaffold(target: Path) -> None:
    scaffold = {
        "vmm_server": "vmm01.example.local",
        "logical_network": "HNV Provider",
        "external_ip_pool": "Public IP Pool",
        "powershell": "pwsh",
        "transcripts_root": "D:/Transcripts",
    }
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w") as f:
        yaml.dump(scaffold, f, default_flow_style=False, sort_keys=False)
