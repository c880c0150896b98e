"""
Group Size Report - Configuration Management

Supports loading configuration from:
1. YAML config file (--config)
2. Environment variables (GSR_*)
3. Command-line arguments (highest priority)

Config file example:
```yaml
output: "./reports"
mode: all
test_limit: 0

m365:
  tenant_id: ${MS365_TENANT_ID}  # env var substitution
  client_id: ${MS365_CLIENT_ID}
```
"""
import os
import re
import stat
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './gsr-config.yaml',
    './gsr-config.yml',
    '~/.gsr/config.yaml',
    '~/.gsr/config.yml',
]

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'output': 'GSR_OUTPUT',
    'log_level': 'GSR_LOG_LEVEL',
    'mode': 'GSR_MODE',
    'test_limit': 'GSR_TEST_LIMIT',
    'workers': 'GSR_WORKERS',
    'top_n': 'GSR_TOP_N',
    'page_size': 'GSR_PAGE_SIZE',
    'over_fetch_multiplier': 'GSR_OVER_FETCH_MULTIPLIER',
    'page_retry_attempts': 'GSR_PAGE_RETRY_ATTEMPTS',
    'm365.tenant_id': 'MS365_TENANT_ID',
    'm365.client_id': 'MS365_CLIENT_ID',
}

INT_KEYS = ('test_limit', 'workers', 'top_n', 'page_size', 'over_fetch_multiplier', 'page_retry_attempts')

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _get_nested(data: Dict, key_path: str, default: Any = None) -> Any:
    """Get a nested value from a dict using dot notation."""
    value = data
    for key in key_path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _set_nested(data: Dict, key_path: str, value: Any) -> None:
    """Set a nested value in a dict using dot notation."""
    keys = key_path.split('.')
    for key in keys[:-1]:
        data = data.setdefault(key, {})
    data[keys[-1]] = value


def _to_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Config value '{key}' must be an integer, got '{value}'") from None


def _to_log_level(value: Any) -> str:
    level = str(value).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Config value 'log_level' must be one of {', '.join(LOG_LEVELS)}, got '{value}'")
    return level


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    # Warn if config file has loose permissions
    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")

    with open(path) as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Config file {config_path} is not valid YAML: {e}") from e

    if not isinstance(config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping at the top level")

    return _substitute_env_vars(config)


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config() -> Dict[str, Any]:
    """Load configuration from environment variables."""
    config: Dict[str, Any] = {}

    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = os.environ.get(env_var)
        if value is not None and value != '':
            if config_key in INT_KEYS:
                value = _to_int(config_key, value)
            _set_nested(config, config_key, value)

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


def args_to_config(args) -> Dict[str, Any]:
    """Convert argparse args to config dict format."""
    config: Dict[str, Any] = {}

    arg_mapping = {
        'output_dir': 'output',
        'log_level': 'log_level',
        'test_limit': 'test_limit',
        'workers': 'workers',
        'top_n': 'top_n',
        'page_size': 'page_size',
        'over_fetch_multiplier': 'over_fetch_multiplier',
        'tenant_id': 'm365.tenant_id',
        'client_id': 'm365.client_id',
    }

    for arg_name, config_key in arg_mapping.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            _set_nested(config, config_key, value)

    return config


def load_config(args) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict with integer settings coerced and log_level
    normalized to an upper-case level name.
    """
    configs = []

    env_config = load_env_config()
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    config_path = getattr(args, 'config', None)
    if config_path:
        configs.append(load_config_file(config_path))
    else:
        default_config = find_default_config()
        if default_config:
            logger.info(f"Found default config file: {default_config}")
            configs.append(load_config_file(default_config))

    configs.append(args_to_config(args))

    merged = merge_configs(*configs)
    for key in INT_KEYS:
        if key in merged:
            merged[key] = _to_int(key, merged[key])
    if merged.get('log_level') is not None:
        merged['log_level'] = _to_log_level(merged['log_level'])
    return merged


def get_setting(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """Read a (possibly nested) setting from a merged config."""
    return _get_nested(config, key_path, default)


def generate_sample_config() -> str:
    """Generate a sample config file content."""
    return '''# Group Size Report Configuration
#
# Environment variable substitution supported:
#   ${VAR_NAME}           - required env var
#   ${VAR_NAME:-default}  - env var with default value

# Output directory for reports and log files
output: "./group_size_output"

# Logging level: DEBUG, INFO, WARNING, ERROR
log_level: INFO

# Which groups to report on: dl, m365 or all
mode: dl

# Process at most this many groups (0 = no limit)
test_limit: 0

# Single-type modes fetch test_limit * over_fetch_multiplier raw groups
# because type filtering happens after retrieval
over_fetch_multiplier: 3

# Concurrent member count lookups (1 = sequential)
workers: 1

# Largest groups listed in the console summary
top_n: 5

# Groups requested per Graph page (max 999)
page_size: 999

# Attempts per group listing page before giving up
page_retry_attempts: 3

# Microsoft Graph app registration
# Required API permissions (Application type):
#   - Group.Read.All
#   - GroupMember.Read.All
m365:
  tenant_id: ${MS365_TENANT_ID}
  client_id: ${MS365_CLIENT_ID}

  # Client secret (always use env var, never put secrets in config files!)
  # Read from MS365_CLIENT_SECRET only.
'''
