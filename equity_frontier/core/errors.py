"""
Exception hierarchy for portfolio computations.

All errors derive from ValueError so callers that already catch bad-data
ValueErrors keep working.
"""


class EquityFrontierError(ValueError):
    """Base class for every error raised by equity_frontier."""


class InvalidInputError(EquityFrontierError):
    """Empty, malformed or too-small dataset (fewer than 2 periods or assets)."""


class SingularCovarianceError(EquityFrontierError):
    """Covariance matrix is not invertible within the configured tolerance."""


class DegenerateFrontierError(EquityFrontierError):
    """The two-constraint solve has a zero denominator (collinear returns)."""


class NumericDomainError(EquityFrontierError, ArithmeticError):
    """Negative radicand, NaN or Inf encountered during a computation."""


class DataProviderError(EquityFrontierError):
    """A price data provider failed: unknown symbol, empty history, I/O error."""
