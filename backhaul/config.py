import re
from pathlib import Path

import yaml
from dotenv import dotenv_values

DEFAULT_LOCK_DIR = "/var/lock"

# NAME["key"]=value lines, the bash associative-array syntax of the old scripts
_MAPPING_KEY = re.compile(r"""^(\w+)\[["']?(.*?)["']?\]$""")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_env_config(path):
    """Load a shell-style KEY=VALUE config file.

    Scalar keys come back as strings. Keys written as NAME["key"]=value are
    grouped into a dict under NAME:

        SOURCE_DIRS_EXCLUDE["/var"]='/var/cache /var/tmp'
        SOURCE_DIRS_EXCLUDE["/etc"]=''

    becomes {"SOURCE_DIRS_EXCLUDE": {"/var": "/var/cache /var/tmp", "/etc": ""}}.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ValueError(f"Config file does not exist: {path}")

    config = {}
    for key, value in dotenv_values(config_path).items():
        match = _MAPPING_KEY.match(key)
        if match:
            name, item = match.groups()
            config.setdefault(name, {})[item] = value or ""
        else:
            config[key] = value
    return config


def load_yaml_config(path):
    """Load a YAML (or JSON) mapping config file."""
    config_path = Path(path)
    if not config_path.is_file():
        raise ValueError(f"Config file does not exist: {path}")
    try:
        config = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")
    if not isinstance(config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")
    return config


def require_keys(config, keys):
    # First missing key wins, in declared order
    for key in keys:
        if key not in config or config[key] is None:
            raise ValueError(f"{key} does not exist")


def as_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES
