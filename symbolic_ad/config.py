"""
Engine configuration.

A single dataclass carries the knobs shared by the numeric evaluation layer,
the derivative checks and the logging system. A process-global instance is
used whenever a caller does not pass its own.
"""

from dataclasses import dataclass, replace
from typing import Optional

from .logging_system import LogLevel, set_log_level


@dataclass
class EngineConfig:
    """Numeric and diagnostic settings of the expression engine"""
    initial_buffer_size: int = 1          # slots allocated on first buffer access
    check_finite: bool = True             # non-finite primal/derivative values raise DomainError
    finite_difference_step: float = 1e-6  # central difference step used by derivative checks
    derivative_tolerance: float = 1e-6    # relative tolerance used by derivative checks
    log_level: LogLevel = LogLevel.MINIMAL

    def __post_init__(self):
        """Validate fields after initialization"""
        if not isinstance(self.initial_buffer_size, int) or self.initial_buffer_size < 1:
            raise ValueError("initial_buffer_size must be a positive integer")
        if not isinstance(self.check_finite, bool):
            raise TypeError("check_finite must be a bool")
        if not self.finite_difference_step > 0.0:
            raise ValueError("finite_difference_step must be positive")
        if not self.derivative_tolerance > 0.0:
            raise ValueError("derivative_tolerance must be positive")
        if not isinstance(self.log_level, LogLevel):
            raise TypeError("log_level must be a LogLevel")


_global_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get or create the global configuration"""
    global _global_config
    if _global_config is None:
        _global_config = EngineConfig()
    return _global_config


def set_config(config: Optional[EngineConfig] = None, **overrides) -> EngineConfig:
    """Install a configuration, optionally overriding single fields"""
    global _global_config
    base = config if config is not None else get_config()
    _global_config = replace(base, **overrides) if overrides else base
    set_log_level(_global_config.log_level)
    return _global_config


def reset_config() -> EngineConfig:
    """Restore the default configuration"""
    return set_config(EngineConfig())
