"""Global configuration for the tableau and its z3 front ends.

Options are seeded from environment variables when the configuration is
first created and can be changed at runtime with ``set_option``.
"""
import logging
import os
from typing import Any, Dict

logger = logging.getLogger(__name__)

_TRUE_STRINGS = ("true", "1", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_STRINGS


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer value %r for %s", raw, name)
        return default


class ConfigRegistry(type):
    """Metaclass implementing singleton pattern for GlobalConfig.

    Ensures only one instance of GlobalConfig exists throughout the application.
    """
    _instance = None

    def __call__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__call__(*args, **kwargs)
        return cls._instance


class GlobalConfig(metaclass=ConfigRegistry):
    """Global configuration manager.

    Attributes:
        check_invariants: Re-check every mutated row of a tableau
            (``LRA_MBO_CHECK_INVARIANTS``, default on).
        trace: Dump the whole tableau at DEBUG level at the trace points of
            maximization and projection (``LRA_MBO_TRACE``, defaults to ``LRA_MBO_DEBUG``).
        max_iterations: Upper bound on the model enumeration loops of the
            z3 front ends (``LRA_MBO_MAX_ITERATIONS``, default 1000).
    """
    OPTIONS = ("check_invariants", "trace", "max_iterations")

    def __init__(self):
        self.check_invariants: bool = True
        self.trace: bool = False
        self.max_iterations: int = 1000
        self.reset()

    def reset(self) -> None:
        """Re-read every option from the environment."""
        self.check_invariants = _env_flag("LRA_MBO_CHECK_INVARIANTS", True)
        self.trace = _env_flag("LRA_MBO_TRACE", _env_flag("LRA_MBO_DEBUG", False))
        self.max_iterations = _env_int("LRA_MBO_MAX_ITERATIONS", 1000)

    def set_option(self, name: str, value: Any) -> None:
        """Set a configuration option.

        Raises:
            ValueError: If the option is unknown or the value has the wrong type.
        """
        if name not in self.OPTIONS:
            raise ValueError(f"Unknown option: {name}")
        if name == "max_iterations":
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"max_iterations must be a positive integer, got {value!r}")
        elif not isinstance(value, bool):
            raise ValueError(f"{name} must be a bool, got {value!r}")
        setattr(self, name, value)

    def get_option(self, name: str) -> Any:
        if name not in self.OPTIONS:
            raise ValueError(f"Unknown option: {name}")
        return getattr(self, name)

    def as_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.OPTIONS}

    def __repr__(self) -> str:
        return f"GlobalConfig({self.as_dict()})"


global_config = GlobalConfig()
