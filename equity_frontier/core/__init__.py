"""Core computational modules for portfolio optimization."""

from equity_frontier.core.config import AnalysisConfig
from equity_frontier.core.errors import (
    DataProviderError,
    DegenerateFrontierError,
    EquityFrontierError,
    InvalidInputError,
    NumericDomainError,
    SingularCovarianceError,
)
from equity_frontier.core.frontier import FrontierPoint, TwoFundFrontier
from equity_frontier.core.loader import (
    FilePriceProvider,
    PriceDataProvider,
    SamplePriceProvider,
    YahooPriceProvider,
    generate_sample_prices,
    normalize_price_table,
)
from equity_frontier.core.optimizer import MomentEstimates, PortfolioOptimizer, estimate_moments
from equity_frontier.core.returns import ReturnMatrix, build_return_matrix, summarize_returns

__all__ = [
    "AnalysisConfig",
    "DataProviderError",
    "DegenerateFrontierError",
    "EquityFrontierError",
    "FilePriceProvider",
    "FrontierPoint",
    "InvalidInputError",
    "MomentEstimates",
    "NumericDomainError",
    "PortfolioOptimizer",
    "PriceDataProvider",
    "ReturnMatrix",
    "SamplePriceProvider",
    "SingularCovarianceError",
    "TwoFundFrontier",
    "YahooPriceProvider",
    "build_return_matrix",
    "estimate_moments",
    "generate_sample_prices",
    "normalize_price_table",
    "summarize_returns",
]
