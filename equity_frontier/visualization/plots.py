"""
Plotting Module for Portfolio Analysis
======================================

This module provides the reporting layer of the workflow:
- Adjusted price history of each instrument (rebased to 100)
- Histograms of periodic returns
- Two-fund efficient frontier with individual assets, the Minimum Variance
  Portfolio (MVP) and the efficient portfolio marked
- Portfolio weight bar charts

Every function returns the matplotlib Figure and optionally saves it.
"""

import logging
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from equity_frontier.core.frontier import FrontierPoint
from equity_frontier.core.optimizer import PortfolioOptimizer
from equity_frontier.core.returns import (
    ReturnMatrix,
    annualize_return,
    annualize_volatility,
    returns_by_instrument,
)

logger = logging.getLogger(__name__)


def _save(fig: Figure, save_path: Optional[str]):
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Figure saved to: {save_path}")


def plot_price_history(
    prices: pd.DataFrame,
    title: str = "Adjusted Price History (Rebased to 100)",
    figsize: Tuple[int, int] = (12, 6),
    save_path: Optional[str] = None
) -> Figure:
    """
    Plot adjusted closing prices of each instrument, rebased to 100.

    Args:
        prices: Long price table with symbol, date and adjusted columns
        title: Plot title
        figsize: Figure size
        save_path: Optional path to save figure

    Returns:
        matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    wide = prices.pivot(index='date', columns='symbol', values='adjusted').sort_index()
    for symbol in wide.columns:
        series = wide[symbol].dropna()
        if series.empty:
            continue
        ax.plot(series.index, series / series.iloc[0] * 100, linewidth=1.5, label=symbol)

    ax.set_xlabel('Date', fontsize=12)
    ax.set_ylabel('Rebased Price', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.legend(loc='upper left', fontsize=10)
    ax.grid(True, alpha=0.3)

    fig.tight_layout()
    _save(fig, save_path)
    return fig


def plot_return_histograms(
    matrix: ReturnMatrix,
    bins: int = 30,
    figsize: Optional[Tuple[int, int]] = None,
    save_path: Optional[str] = None
) -> Figure:
    """
    Plot one histogram of periodic returns per instrument.

    Args:
        matrix: Return matrix
        bins: Number of histogram bins
        figsize: Figure size (default scales with the number of instruments)
        save_path: Optional path to save figure

    Returns:
        matplotlib Figure object
    """
    series = returns_by_instrument(matrix)
    n_cols = min(3, len(series))
    n_rows = int(np.ceil(len(series) / n_cols))
    if figsize is None:
        figsize = (4 * n_cols, 3 * n_rows)

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    flat_axes = axes.flatten()

    for ax, (name, values) in zip(flat_axes, series.items()):
        ax.hist(values * 100, bins=bins, color='steelblue', edgecolor='black', alpha=0.8)
        ax.axvline(x=np.mean(values) * 100, color='red', linestyle='--', linewidth=1)
        ax.set_title(name, fontsize=11, fontweight='bold')
        ax.set_xlabel(f'{matrix.frequency.capitalize()} Return %', fontsize=9)
        ax.grid(True, alpha=0.3)

    for ax in flat_axes[len(series):]:
        ax.axis('off')

    fig.suptitle('Return Distributions', fontsize=14, fontweight='bold')
    fig.tight_layout()
    _save(fig, save_path)
    return fig


def plot_efficient_frontier(
    optimizer: PortfolioOptimizer,
    frontier: Iterable[FrontierPoint],
    mvp_weights: Optional[np.ndarray] = None,
    efficient_weights: Optional[np.ndarray] = None,
    periods_per_year: int = 12,
    show_assets: bool = True,
    figsize: Tuple[int, int] = (12, 8),
    save_path: Optional[str] = None,
    title: str = "Efficient Frontier (Two-Fund Separation)"
) -> Figure:
    """
    Plot the two-fund frontier with assets and reference portfolios.

    All points are annualized in percent with the same convention as the
    frontier points (return x periods, volatility x sqrt(periods)).

    Args:
        optimizer: PortfolioOptimizer instance with portfolio data
        frontier: Frontier points (e.g. a TwoFundFrontier)
        mvp_weights: If provided, mark the MVP
        efficient_weights: If provided, mark the efficient portfolio
        periods_per_year: Annualization factor for assets and portfolios
        show_assets: If True, show individual assets
        figsize: Figure size (width, height)
        save_path: If provided, save the figure to this path
        title: Plot title

    Returns:
        matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    points = list(frontier)
    vols = [p.volatility for p in points]
    rets = [p.expected_return for p in points]
    ax.plot(vols, rets, 'b-', linewidth=2, label='Efficient Frontier', zorder=2)

    # Reference segment c in [0, 1]
    inner = [p for p in points if 0.0 <= p.coefficient <= 1.0]
    if inner:
        ax.plot([p.volatility for p in inner], [p.expected_return for p in inner],
                color='navy', linewidth=4, alpha=0.4, zorder=2)

    if show_assets:
        asset_rets = annualize_return(optimizer.expected_returns, periods_per_year)
        asset_vols = annualize_volatility(np.sqrt(np.diag(optimizer.cov_matrix)), periods_per_year)
        ax.scatter(asset_vols, asset_rets,
                   c='red', s=100, marker='o', edgecolors='black',
                   label='Individual Assets', zorder=5)
        for i, name in enumerate(optimizer.asset_names):
            ax.annotate(name,
                        (asset_vols[i], asset_rets[i]),
                        xytext=(5, 5), textcoords='offset points',
                        fontsize=9, fontweight='bold')

    markers = [
        ('MVP', mvp_weights, 'purple', '*'),
        ('Efficient', efficient_weights, 'gold', 'D'),
    ]
    for label, weights, color, marker in markers:
        if weights is None:
            continue
        stats = optimizer.portfolio_stats(weights)
        vol = annualize_volatility(stats['std'], periods_per_year)
        ret = annualize_return(stats['mean'], periods_per_year)
        ax.scatter([vol], [ret],
                   c=color, s=200, marker=marker, edgecolors='black',
                   label=f"{label} (σ={vol:.2f}%, μ={ret:.2f}%)",
                   zorder=6)

    ax.set_xlabel('Annualized Volatility %', fontsize=12)
    ax.set_ylabel('Annualized Expected Return %', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.legend(loc='upper left', fontsize=10)
    ax.grid(True, alpha=0.3)

    fig.tight_layout()
    _save(fig, save_path)
    return fig


def plot_portfolio_weights(
    weights: np.ndarray,
    asset_names: List[str],
    title: str = "Portfolio Weights",
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
) -> Figure:
    """
    Create a bar chart of portfolio weights.

    Args:
        weights: Array of portfolio weights
        asset_names: List of asset names
        title: Plot title
        figsize: Figure size
        save_path: Optional path to save figure

    Returns:
        matplotlib Figure object
    """
    weights = np.asarray(weights, dtype=float)
    fig, ax = plt.subplots(figsize=figsize)

    colors = ['green' if w >= 0 else 'red' for w in weights]
    bars = ax.bar(asset_names, weights * 100, color=colors, edgecolor='black')

    for bar, w in zip(bars, weights):
        height = bar.get_height()
        ax.annotate(f'{w*100:.1f}%',
                    xy=(bar.get_x() + bar.get_width() / 2, height),
                    xytext=(0, 3 if height >= 0 else -15),
                    textcoords='offset points',
                    ha='center', va='bottom' if height >= 0 else 'top',
                    fontsize=10, fontweight='bold')

    ax.axhline(y=0, color='black', linestyle='-', linewidth=0.5)
    ax.set_xlabel('Assets', fontsize=12)
    ax.set_ylabel('Weight %', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.grid(True, axis='y', alpha=0.3)

    fig.tight_layout()
    _save(fig, save_path)
    return fig
