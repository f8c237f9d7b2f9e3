"""Configuration validation.

This module checks a user supplied Config once at startup and returns a
normalized copy in which exactly the multi-address form is populated and
every default is filled in.
"""

from upshift.exceptions import ConfigValidationError
from upshift.graceful import parse_address

from ._models import (
    DEFAULT_KILL_GRACE,
    DEFAULT_MIN_FETCH_INTERVAL,
    DEFAULT_SANITY_CHECK_TIMEOUT,
    DEFAULT_TERMINATE_TIMEOUT,
    Config,
)


def _positive_or_default(value: float, default: float) -> float:
    return value if value > 0 else default


def validate_config(config: Config) -> Config:
    """Validate a configuration and fill in its defaults.

    Args:
        config: The configuration supplied by the caller.

    Returns:
        A normalized copy where ``addresses`` holds every listen address,
        ``address`` is the first of them, non-positive durations are
        replaced by their defaults and ``crash_restarts`` is resolved.

    Raises:
        ConfigValidationError: If both or neither address forms are set,
            or an address cannot be parsed.
    """
    if config.address and config.addresses:
        msg = "Config.address and Config.addresses can't both be set"
        raise ConfigValidationError(
            msg,
            key="address",
            value=config.address,
            expected="either address or addresses",
        )

    addresses = (config.address,) if config.address else tuple(config.addresses)
    if not addresses:
        msg = "Config.address or Config.addresses required"
        raise ConfigValidationError(
            msg,
            key="addresses",
            value=addresses,
            expected="at least one listen address",
        )

    for index, address in enumerate(addresses):
        try:
            _ = parse_address(address)
        except ValueError as e:
            raise ConfigValidationError(
                str(e),
                key=f"addresses[{index}]",
                value=address,
                expected="host:port",
            ) from e

    crash_restarts = config.crash_restarts
    if crash_restarts is None:
        crash_restarts = 0 if config.required else 1

    return config.model_copy(
        update={
            "address": addresses[0],
            "addresses": addresses,
            "terminate_timeout": _positive_or_default(
                config.terminate_timeout, DEFAULT_TERMINATE_TIMEOUT
            ),
            "kill_grace": _positive_or_default(config.kill_grace, DEFAULT_KILL_GRACE),
            "min_fetch_interval": _positive_or_default(
                config.min_fetch_interval, DEFAULT_MIN_FETCH_INTERVAL
            ),
            "sanity_check_timeout": _positive_or_default(
                config.sanity_check_timeout, DEFAULT_SANITY_CHECK_TIMEOUT
            ),
            "crash_restarts": crash_restarts,
        }
    )
