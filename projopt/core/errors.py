"""
Error taxonomy for the optimizer

Only ValidationError, ConfigurationError and OptimizationCancelled escape an
optimize() call. StrategyExecutionError is captured on the strategy outcome
and logged; a failed verification is a normal result, not an exception.
"""


class OptimizerError(Exception):
    """Base class for all optimizer errors"""


class ValidationError(OptimizerError):
    """Malformed descriptor or query (cyclic nesting, excluded nested field, ...)"""


class ConfigurationError(OptimizerError):
    """Missing or invalid configuration, e.g. no cost model engine"""


class StrategyExecutionError(OptimizerError):
    """A strategy raised while rewriting a descriptor or query"""

    def __init__(self, strategy_name: str, cause: BaseException):
        super().__init__(f"Strategy '{strategy_name}' failed: {cause}")
        self.strategy_name = strategy_name
        self.cause = cause


class OptimizationCancelled(OptimizerError):
    """The caller cancelled the run between two strategies"""
