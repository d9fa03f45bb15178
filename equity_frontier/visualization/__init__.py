"""Visualization modules for portfolio analysis."""

from equity_frontier.visualization.plots import (
    plot_price_history,
    plot_return_histograms,
    plot_efficient_frontier,
    plot_portfolio_weights
)

__all__ = [
    "plot_price_history",
    "plot_return_histograms",
    "plot_efficient_frontier",
    "plot_portfolio_weights",
]
