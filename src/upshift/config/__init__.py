"""upshift configuration.

Example:
    >>> from upshift.config import Config, validate_config
    >>> config = validate_config(Config(program=serve, address=":8080"))
    >>> config.addresses
    (':8080',)
"""

from upshift.exceptions import ConfigError, ConfigValidationError

from ._models import (
    DEFAULT_KILL_GRACE,
    DEFAULT_MIN_FETCH_INTERVAL,
    DEFAULT_RESTART_SIGNAL,
    DEFAULT_SANITY_CHECK_TIMEOUT,
    DEFAULT_TERMINATE_TIMEOUT,
    Config,
)
from ._validation import validate_config

__all__ = [
    "DEFAULT_KILL_GRACE",
    "DEFAULT_MIN_FETCH_INTERVAL",
    "DEFAULT_RESTART_SIGNAL",
    "DEFAULT_SANITY_CHECK_TIMEOUT",
    "DEFAULT_TERMINATE_TIMEOUT",
    "Config",
    "ConfigError",
    "ConfigValidationError",
    "validate_config",
]
