"""
Main Runner Script for Mean-Variance Analysis
=============================================

This script runs the full workflow:
1. Fetching daily prices (Yahoo Finance, a CSV/Excel file, or sample data)
2. Building the return matrix and descriptive statistics
3. Estimating the mean vector and covariance matrix
4. Solving the minimum variance and efficient portfolios
5. Sweeping the two-fund efficient frontier
6. Writing CSV tables and plots

Usage:
    ef-analyze                                   # Run with sample data
    ef-analyze --symbols AAPL MSFT KO --start 2015-01-01
    ef-analyze --file prices.csv --frequency daily
    ef-analyze --target-return 0.015             # Per-period target
"""

import sys
import argparse
import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from equity_frontier.core.config import AnalysisConfig
from equity_frontier.core.errors import DegenerateFrontierError, EquityFrontierError
from equity_frontier.core.frontier import TwoFundFrontier
from equity_frontier.core.loader import (
    FilePriceProvider,
    PriceDataProvider,
    SamplePriceProvider,
    YahooPriceProvider,
)
from equity_frontier.core.optimizer import PortfolioOptimizer, estimate_moments
from equity_frontier.core.returns import build_return_matrix, summarize_returns
from equity_frontier.visualization import (
    plot_efficient_frontier,
    plot_portfolio_weights,
    plot_price_history,
    plot_return_histograms,
)

LOGGER_NAME = "equity_frontier"
DEFAULT_SYMBOLS = ['AAPL', 'AXP', 'BA', 'CAT']


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logger(
    script_name: str = "portfolio_analysis",
    log_dir: Optional[Path] = None
) -> logging.Logger:
    """
    Sets up the package logger to write to both file and console.

    Module loggers (equity_frontier.core.*) propagate into it.

    Args:
        script_name: Name of the script (used in log filename)
        log_dir: Directory for log files (default: ./logs)

    Returns:
        Configured logger instance
    """
    log_dir = Path(log_dir) if log_dir is not None else Path.cwd() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y_%m_%d_%H%M")
    log_filename = log_dir / f"log_{script_name}_{timestamp}.txt"

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    # Clear existing handlers (prevent duplicates)
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


# =============================================================================
# ANALYSIS CHECKPOINTS
# =============================================================================

class AnalysisCheckpoint:
    """
    Tracks the progress of the analysis and logs each step.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.steps_completed = {}
        self.start_time = datetime.now()
        self.current_step = None

    def start_step(self, step_name: str):
        """Mark a step as started."""
        self.current_step = step_name
        self.logger.info(f"[CHECKPOINT] Starting: {step_name}")

    def complete_step(self, step_name: str):
        """Mark a step as completed."""
        self.steps_completed[step_name] = True
        self.logger.info(f"[CHECKPOINT] Completed: {step_name}")

    def get_progress_summary(self) -> dict:
        """Get summary of analysis progress."""
        elapsed = (datetime.now() - self.start_time).total_seconds()
        return {
            'steps_completed': list(self.steps_completed.keys()),
            'current_step': self.current_step,
            'elapsed_seconds': elapsed
        }

    def log_final_report(self):
        """Log final analysis report."""
        summary = self.get_progress_summary()
        self.logger.info("=" * 60)
        self.logger.info("  ANALYSIS COMPLETE")
        self.logger.info("=" * 60)
        self.logger.info(f"  Steps completed: {len(summary['steps_completed'])}")
        self.logger.info(f"  Total time: {summary['elapsed_seconds']:.2f} seconds")
        self.logger.info("=" * 60)


# =============================================================================
# MAIN ANALYSIS FUNCTIONS
# =============================================================================

def _log_portfolio(logger: logging.Logger, title: str, weights, stats, names, ppy: int):
    logger.info(f"--- {title} ---")
    logger.info("Weights:")
    for name, w in zip(names, weights):
        logger.info(f"  {name}: {w*100:>8.2f}%")
    logger.info(f"Expected Return: {stats['mean']*100:.4f}% per period "
                f"({stats['mean']*ppy*100:.2f}% annualized)")
    logger.info(f"Standard Deviation: {stats['std']*100:.4f}% per period "
                f"({stats['std']*np.sqrt(ppy)*100:.2f}% annualized)")
    logger.info(f"Sharpe Ratio: {stats['sharpe']:.4f}")


def run_full_analysis(
    prices: pd.DataFrame,
    config: Optional[AnalysisConfig] = None,
    save_outputs: bool = True,
    save_plots: bool = True,
    output_dir: Optional[str] = None,
    show_plots: bool = False,
    logger: Optional[logging.Logger] = None
) -> dict:
    """
    Run the complete mean-variance analysis on a price table.

    Args:
        prices: Normalized long price table
        config: Analysis configuration (default: AnalysisConfig())
        save_outputs: If True, write summary, weights and frontier CSV files
        save_plots: If True, save plots to files
        output_dir: Directory for output files (default: ./output)
        show_plots: If True, leave the figures open for plt.show()
        logger: Logger instance

    Returns:
        Dictionary containing all analysis results

    Raises:
        EquityFrontierError: On invalid input or numerical failure
    """
    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)
    if config is None:
        config = AnalysisConfig()
    config.validate()

    output_dir = Path(output_dir) if output_dir is not None else Path.cwd() / "output"
    if save_outputs or save_plots:
        output_dir.mkdir(parents=True, exist_ok=True)

    checkpoint = AnalysisCheckpoint(logger)
    results = {'config': config}
    ppy = config.periods_per_year

    logger.info("=" * 70)
    logger.info("  MEAN-VARIANCE PORTFOLIO ANALYSIS")
    logger.info("=" * 70)
    for line in config.summary_lines():
        logger.info(f"  {line}")
    logger.info("=" * 70)

    # Step 1: Return matrix
    checkpoint.start_step("Build Return Matrix")
    matrix = build_return_matrix(prices, config.frequency, config.history_policy)
    results['returns'] = matrix
    logger.info(f"Return matrix: {matrix.n_periods} periods x {matrix.n_assets} instruments "
                f"({', '.join(matrix.asset_names)})")
    checkpoint.complete_step("Build Return Matrix")

    # Step 2: Descriptive statistics
    checkpoint.start_step("Summary Statistics")
    summary = summarize_returns(matrix)
    results['summary'] = summary
    logger.info(f"{'Asset':<10} {'Mean %':>10} {'Std %':>10} {'Ann. Mean %':>12} {'Ann. Vol %':>11}")
    logger.info("-" * 57)
    for name, row in summary.iterrows():
        logger.info(f"{name:<10} {row['mean']*100:>10.4f} {row['std']*100:>10.4f} "
                    f"{row['annual_mean_pct']:>12.2f} {row['annual_vol_pct']:>11.2f}")
    checkpoint.complete_step("Summary Statistics")

    # Step 3: Moments and optimizer
    checkpoint.start_step("Estimate Moments")
    moments = estimate_moments(matrix)
    optimizer = PortfolioOptimizer.from_moments(
        moments,
        rf_rate=config.rf_rate,
        max_condition=config.max_condition,
        allow_pseudo_inverse=config.allow_pseudo_inverse,
    )
    results['moments'] = moments
    results['optimizer'] = optimizer
    logger.info(f"Covariance condition number: {optimizer.condition_number:.3e}")
    checkpoint.complete_step("Estimate Moments")

    # Step 4: Minimum Variance Portfolio
    checkpoint.start_step("Find Minimum Variance Portfolio")
    mvp_weights, mvp_stats = optimizer.minimum_variance_portfolio()
    results['mvp'] = {'weights': mvp_weights, 'stats': mvp_stats}
    _log_portfolio(logger, "Minimum Variance Portfolio (MVP)",
                   mvp_weights, mvp_stats, optimizer.asset_names, ppy)
    checkpoint.complete_step("Find Minimum Variance Portfolio")

    # Step 5: Efficient portfolio for the target return
    checkpoint.start_step("Find Efficient Portfolio")
    target = config.target_return
    if target is None:
        target = optimizer.default_target_return()
    eff_weights, eff_stats = optimizer.efficient_portfolio(target)
    results['efficient'] = {'weights': eff_weights, 'stats': eff_stats, 'target': target}
    _log_portfolio(logger, f"Efficient Portfolio (target {target*100:.4f}% per period)",
                   eff_weights, eff_stats, optimizer.asset_names, ppy)
    checkpoint.complete_step("Find Efficient Portfolio")

    # Step 6: Tangent portfolio
    checkpoint.start_step("Find Tangent Portfolio")
    try:
        tan_weights, tan_stats = optimizer.tangent_portfolio()
        results['tangent'] = {'weights': tan_weights, 'stats': tan_stats}
        _log_portfolio(logger, "Tangent Portfolio (Maximum Sharpe Ratio)",
                       tan_weights, tan_stats, optimizer.asset_names, ppy)
    except DegenerateFrontierError as e:
        logger.warning(f"Tangent portfolio skipped: {e}")
        results['tangent'] = None
    checkpoint.complete_step("Find Tangent Portfolio")

    # Step 7: Two-fund frontier
    checkpoint.start_step("Two-Fund Frontier")
    frontier = TwoFundFrontier(
        optimizer, mvp_weights, eff_weights,
        start=config.frontier_start,
        stop=config.frontier_stop,
        step=config.frontier_step,
        periods_per_year=ppy,
    )
    frontier_frame = frontier.to_frame()
    results['frontier'] = frontier
    results['frontier_frame'] = frontier_frame
    logger.info(f"Efficient frontier calculated with {len(frontier)} points")
    checkpoint.complete_step("Two-Fund Frontier")

    portfolios = {'MVP': mvp_weights, 'Efficient': eff_weights}
    if results['tangent'] is not None:
        portfolios['Tangent'] = results['tangent']['weights']
    weights_frame = optimizer.weights_frame(portfolios)
    results['weights'] = weights_frame

    # Step 8: Tables
    if save_outputs:
        checkpoint.start_step("Write Tables")
        summary.to_csv(output_dir / "summary.csv")
        weights_frame.to_csv(output_dir / "weights.csv")
        frontier_frame.to_csv(output_dir / "frontier.csv", index=False)
        logger.info(f"Saved: summary.csv, weights.csv, frontier.csv in {output_dir}")
        checkpoint.complete_step("Write Tables")

    # Step 9: Plots
    if save_plots:
        checkpoint.start_step("Generate Plots")
        figures = [
            plot_price_history(prices, save_path=str(output_dir / "price_history.png")),
            plot_return_histograms(matrix, save_path=str(output_dir / "return_histograms.png")),
            plot_efficient_frontier(
                optimizer, frontier, mvp_weights, eff_weights,
                periods_per_year=ppy,
                save_path=str(output_dir / "efficient_frontier.png")
            ),
            plot_portfolio_weights(
                mvp_weights, optimizer.asset_names,
                title="Minimum Variance Portfolio Weights",
                save_path=str(output_dir / "mvp_weights.png")
            ),
            plot_portfolio_weights(
                eff_weights, optimizer.asset_names,
                title="Efficient Portfolio Weights",
                save_path=str(output_dir / "efficient_weights.png")
            ),
        ]
        # Figures stay open only for an interactive plt.show()
        if not show_plots:
            for fig in figures:
                plt.close(fig)
        checkpoint.complete_step("Generate Plots")

    checkpoint.log_final_report()
    return results


def fetch_prices(
    provider: PriceDataProvider,
    symbols: Optional[Sequence[str]],
    start: Optional[str] = None,
    end: Optional[str] = None,
    logger: Optional[logging.Logger] = None
) -> pd.DataFrame:
    """
    Fetch prices through a provider, logging what was received.

    Provider errors propagate to the caller.
    """
    if logger is None:
        logger = logging.getLogger(LOGGER_NAME)

    logger.info(f"Fetching prices from {provider.name} provider")
    prices = provider.fetch(symbols, start=start, end=end)
    logger.info(f"Received {len(prices)} observations for "
                f"{prices['symbol'].nunique()} instruments "
                f"({prices['date'].min().date()} to {prices['date'].max().date()})")
    return prices


def make_provider(args) -> PriceDataProvider:
    """Pick the price provider from command line arguments."""
    if args.file:
        return FilePriceProvider(args.file, sheet_name=args.sheet)
    if args.symbols:
        return YahooPriceProvider()
    return SamplePriceProvider()


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Closed-Form Mean-Variance Portfolio Analysis',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ef-analyze                                    # Run with sample data
  ef-analyze --symbols AAPL MSFT KO --start 2015-01-01
  ef-analyze --file prices.csv --frequency daily
  ef-analyze --history-policy drop_periods --pseudo-inverse
        """
    )

    source = parser.add_argument_group('data source')
    source.add_argument('--symbols', nargs='+', help='Symbols to download from Yahoo Finance')
    source.add_argument('--file', '-f', type=str,
                        help='Long-format CSV/Excel price file (symbol, date, adj close)')
    source.add_argument('--sheet', '-s', type=str, default=None,
                        help='Sheet name for Excel files (default: first sheet)')
    source.add_argument('--start', type=str, default=None, help='First date (YYYY-MM-DD)')
    source.add_argument('--end', type=str, default=None, help='Last date (YYYY-MM-DD)')

    analysis = parser.add_argument_group('analysis')
    analysis.add_argument('--frequency', choices=sorted(AnalysisConfig.FREQUENCY_PERIODS),
                          default='monthly', help='Return period (default: monthly)')
    analysis.add_argument('--history-policy', choices=AnalysisConfig.HISTORY_POLICIES,
                          default='max_count',
                          help='Handling of instruments with incomplete history')
    analysis.add_argument('--target-return', type=float, default=None,
                          help='Per-period target return (default: highest asset mean)')
    analysis.add_argument('--rf-rate', '-r', type=float, default=0.0,
                          help='Per-period risk-free rate (default: 0)')
    analysis.add_argument('--c-start', type=float, default=-0.4,
                          help='First frontier mixing coefficient (default: -0.4)')
    analysis.add_argument('--c-stop', type=float, default=1.9,
                          help='Last frontier mixing coefficient (default: 1.9)')
    analysis.add_argument('--c-step', type=float, default=0.01,
                          help='Frontier coefficient step (default: 0.01)')
    analysis.add_argument('--max-condition', type=float, default=1e12,
                          help='Largest acceptable covariance condition number')
    analysis.add_argument('--pseudo-inverse', action='store_true',
                          help='Use a pseudo-inverse for singular covariance matrices')

    output = parser.add_argument_group('output')
    output.add_argument('--output-dir', '-o', type=str, default=None,
                        help='Directory for tables and plots (default: ./output)')
    output.add_argument('--log-dir', type=str, default=None,
                        help='Directory for log files (default: ./logs)')
    output.add_argument('--no-plots', action='store_true', help='Disable plot generation')
    output.add_argument('--show-plots', action='store_true',
                        help='Show plots interactively (default: just save)')
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the analysis script."""
    args = build_parser().parse_args(argv)
    logger = setup_logger("portfolio_analysis", args.log_dir)

    if not args.show_plots:
        plt.switch_backend('Agg')

    try:
        config = AnalysisConfig.from_args(args)
        provider = make_provider(args)
        symbols = args.symbols
        if symbols is None and not args.file:
            logger.info("No symbols or file specified. Using sample data...")
            symbols = DEFAULT_SYMBOLS

        prices = fetch_prices(provider, symbols, args.start, args.end, logger)
        run_full_analysis(
            prices,
            config,
            save_plots=not args.no_plots,
            output_dir=args.output_dir,
            show_plots=args.show_plots,
            logger=logger
        )

        if args.show_plots:
            plt.show()
        plt.close('all')

        logger.info("Analysis completed successfully!")
        return 0

    except EquityFrontierError as e:
        logger.error(f"Analysis failed: {type(e).__name__}: {e}")
        return 1
    except Exception as e:
        logger.error(f"Analysis failed: {e}")
        logger.error(traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
