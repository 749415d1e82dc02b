"""
Engine configuration.

Holds the knobs used when an operator table is built (derivative validation
domain, numeric-derivative fallback) and the default log verbosity. A single
process-wide default is kept so callers that never touch configuration get
sensible behaviour.

``log_level`` reaches the global logger only through ``set_config``. A config
handed straight to ``build_operator_table`` supplies validation settings and
leaves verbosity alone.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .logging_system import LogLevel, set_log_level


@dataclass(frozen=True)
class EngineConfig:
    domain_low: float = -100.0     # derivative validation grid, lower bound
    domain_high: float = 100.0     # derivative validation grid, upper bound
    domain_points: int = 99        # points per axis (binary ops use a square grid)
    allow_numeric_derivatives: bool = False
    finite_difference_step: float = 1e-6
    log_level: LogLevel = LogLevel.MODERATE

    def __post_init__(self):
        if self.domain_points < 1:
            raise ValueError("domain_points must be a positive integer")
        if not self.domain_low < self.domain_high:
            raise ValueError("domain_low must be smaller than domain_high")
        if self.finite_difference_step <= 0:
            raise ValueError("finite_difference_step must be positive")

    def with_options(self, **changes) -> 'EngineConfig':
        """Return a copy with the given fields replaced"""
        return replace(self, **changes)


_global_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get or create the global configuration"""
    global _global_config
    if _global_config is None:
        _global_config = EngineConfig()
    return _global_config


def set_config(config: EngineConfig) -> EngineConfig:
    """Replace the global configuration and apply its log level"""
    global _global_config
    _global_config = config
    set_log_level(config.log_level)
    return _global_config
