"""
Equity Frontier - Closed-Form Mean-Variance Portfolio Analysis
==============================================================

Fetch equity prices, compute returns and solve the analytic
minimum-variance and efficient portfolios.

Usage:
    from equity_frontier import YahooPriceProvider, build_return_matrix
    from equity_frontier import estimate_moments, PortfolioOptimizer, TwoFundFrontier
    from equity_frontier.visualization import plot_efficient_frontier

Classes:
    PortfolioOptimizer - Minimum variance, efficient and tangent portfolios
    TwoFundFrontier - Lazy efficient frontier sweep
    YahooPriceProvider, FilePriceProvider, SamplePriceProvider - Price sources

Functions:
    build_return_matrix - Prices to a dense return matrix
    estimate_moments - Sample mean vector and covariance matrix
    summarize_returns - Descriptive statistics table
"""

from equity_frontier.core.optimizer import (
    PortfolioOptimizer,
    MomentEstimates,
    estimate_moments
)
from equity_frontier.core.frontier import FrontierPoint, TwoFundFrontier
from equity_frontier.core.returns import ReturnMatrix, build_return_matrix, summarize_returns
from equity_frontier.core.loader import (
    FilePriceProvider,
    SamplePriceProvider,
    YahooPriceProvider,
    generate_sample_prices
)
from equity_frontier.core.config import AnalysisConfig
from equity_frontier.core.errors import (
    EquityFrontierError,
    InvalidInputError,
    SingularCovarianceError,
    DegenerateFrontierError,
    NumericDomainError,
    DataProviderError
)

__version__ = "1.0.0"

__all__ = [
    "PortfolioOptimizer",
    "MomentEstimates",
    "estimate_moments",
    "FrontierPoint",
    "TwoFundFrontier",
    "ReturnMatrix",
    "build_return_matrix",
    "summarize_returns",
    "FilePriceProvider",
    "SamplePriceProvider",
    "YahooPriceProvider",
    "generate_sample_prices",
    "AnalysisConfig",
    "EquityFrontierError",
    "InvalidInputError",
    "SingularCovarianceError",
    "DegenerateFrontierError",
    "NumericDomainError",
    "DataProviderError",
]
