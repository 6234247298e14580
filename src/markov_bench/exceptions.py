"""
Exception types raised by the cohort model and the benchmark harness.
"""

from typing import Optional


class MarkovBenchError(Exception):
    """Base class for all errors raised by markov_bench."""


class ConfigurationError(MarkovBenchError, ValueError):
    """Invalid configuration: distribution parameters, weights, names."""


class ModelValidationError(MarkovBenchError, ValueError):
    """
    Model inputs or derived quantities violate a modelling invariant.

    Parameters
    ----------
    message : str
        Description of the violated invariant
    strategy : str, optional
        Strategy whose transition matrix failed, if known
    """

    def __init__(self, message: str, strategy: Optional[str] = None):
        super().__init__(message)
        self.strategy = strategy


class ReplicateError(MarkovBenchError):
    """
    A single unit of work (replicate, strategy) failed.

    All constructor arguments are kept in ``args`` so the error survives
    the round trip through a process pool.
    """

    def __init__(self, replicate: object, strategy: Optional[str],
                 reason: str):
        super().__init__(replicate, strategy, reason)
        self.replicate = replicate
        self.strategy = strategy
        self.reason = reason

    def __str__(self) -> str:
        where = f"replicate {self.replicate}"
        if self.strategy is not None:
            where += f", strategy {self.strategy}"
        return f"{where}: {self.reason}"


class VariantMismatchError(MarkovBenchError):
    """Two benchmark variants produced different result tables."""
