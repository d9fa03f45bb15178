"""
Portfolio Optimizer - Closed-Form Mean-Variance Optimization
============================================================

This module implements the analytic solutions of Markowitz mean-variance
optimization with short selling allowed:
- Moment estimation (sample mean vector and covariance matrix)
- Minimum Variance Portfolio (MVP)
- Minimum variance portfolio for a target expected return
- Tangent Portfolio (Maximum Sharpe Ratio)

Theory Background:
------------------
With only the budget constraint 1'w = 1 the variance w' Sigma w is minimized by

    w_mvp = Sigma^-1 1 / (1' Sigma^-1 1)

Adding the constraint w' mu = target gives a two-constraint quadratic
program whose Lagrangian solution is expressed with three scalars

    C = 1' Sigma^-1 1,   D = 1' Sigma^-1 mu,   E = mu' Sigma^-1 mu

    lambda = 2 (target - D/C) / (E - D^2/C)
    w_eff  = w_mvp + lambda/2 * (Sigma^-1 mu - D/C * Sigma^-1 1)

Sigma^-1 is never formed explicitly: a Cholesky factorization is computed
once and every Sigma^-1 b is a triangular solve. A covariance that is not
positive definite, or whose condition number exceeds the configured
threshold, is rejected with SingularCovarianceError.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from equity_frontier.core.errors import (
    DegenerateFrontierError,
    InvalidInputError,
    NumericDomainError,
    SingularCovarianceError,
)
from equity_frontier.core.returns import ReturnMatrix

logger = logging.getLogger(__name__)

SYMMETRY_TOLERANCE = 1e-12


def _readonly(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=float)
    array.flags.writeable = False
    return array


def _check_symmetric(cov_matrix: np.ndarray):
    scale = max(np.max(np.abs(cov_matrix)), np.finfo(float).tiny)
    asymmetry = np.max(np.abs(cov_matrix - cov_matrix.T))
    if asymmetry > SYMMETRY_TOLERANCE * scale:
        raise NumericDomainError(
            f"Covariance matrix is not symmetric (max deviation {asymmetry:.3e})"
        )


@dataclass(frozen=True, eq=False)
class MomentEstimates:
    """
    Sample moments of a return matrix.

    Attributes:
        expected_returns: Mean return per asset (N)
        cov_matrix: Sample covariance matrix (N x N)
        asset_names: Column names of the return matrix
        n_periods: Number of observations the moments were estimated from
    """

    expected_returns: np.ndarray
    cov_matrix: np.ndarray
    asset_names: List[str]
    n_periods: int

    @property
    def n_assets(self) -> int:
        return len(self.expected_returns)

    @property
    def volatilities(self) -> np.ndarray:
        return np.sqrt(np.diag(self.cov_matrix))

    def correlation_matrix(self) -> np.ndarray:
        vol = self.volatilities
        return self.cov_matrix / np.outer(vol, vol)


def estimate_moments(
    returns: Union[ReturnMatrix, pd.DataFrame, np.ndarray],
    asset_names: Optional[List[str]] = None,
    ddof: int = 1
) -> MomentEstimates:
    """
    Compute expected returns and covariance matrix from historical returns.

    Args:
        returns: ReturnMatrix, DataFrame or 2D array (rows = periods, cols = assets)
        asset_names: Optional names, overriding the ones carried by returns
        ddof: Covariance divisor offset (1 = unbiased sample covariance)

    Returns:
        MomentEstimates with read-only arrays

    Raises:
        InvalidInputError: Fewer than 2 periods or 2 assets
        NumericDomainError: Non-finite returns or asymmetric covariance
    """
    if isinstance(returns, ReturnMatrix):
        names = returns.asset_names
        values = returns.values
    elif isinstance(returns, pd.DataFrame):
        names = [str(col) for col in returns.columns]
        values = returns.to_numpy(dtype=float)
    else:
        values = np.asarray(returns, dtype=float)
        if values.ndim == 1:
            values = values.reshape(-1, 1)
        names = None

    if values.ndim != 2:
        raise InvalidInputError(f"Returns must be 2-dimensional, got shape {values.shape}")

    n_periods, n_assets = values.shape
    if n_periods < 2:
        raise InvalidInputError(
            f"Need at least 2 return periods to estimate a covariance, got {n_periods}"
        )
    if n_assets < 2:
        raise InvalidInputError(
            f"Need at least 2 instruments to optimize a portfolio, got {n_assets}"
        )
    if not np.all(np.isfinite(values)):
        raise NumericDomainError("Returns contain NaN or Inf values")

    if asset_names is not None:
        names = list(asset_names)
    if names is None:
        names = [f"Asset_{i+1}" for i in range(n_assets)]
    if len(names) != n_assets:
        raise InvalidInputError(
            f"Got {len(names)} asset names for {n_assets} return columns"
        )

    expected_returns = np.mean(values, axis=0)
    cov_matrix = np.cov(values, rowvar=False, ddof=ddof)

    if not np.all(np.isfinite(cov_matrix)):
        raise NumericDomainError("Covariance matrix contains NaN or Inf")
    _check_symmetric(cov_matrix)

    logger.debug(f"Estimated moments for {n_assets} assets over {n_periods} periods")
    return MomentEstimates(
        expected_returns=_readonly(expected_returns),
        cov_matrix=_readonly(cov_matrix),
        asset_names=names,
        n_periods=n_periods,
    )


class PortfolioOptimizer:
    """
    Closed-form mean-variance optimizer (short selling allowed).

    This class provides methods to:
    - Calculate portfolio statistics (mean, variance, standard deviation, Sharpe)
    - Find the minimum variance portfolio
    - Find the minimum variance portfolio for a target return
    - Find the tangent (maximum Sharpe ratio) portfolio

    Attributes:
        expected_returns (np.ndarray): Vector of expected returns for each asset
        cov_matrix (np.ndarray): Covariance matrix of asset returns
        asset_names (List[str]): Names of the assets
        n_assets (int): Number of assets in the portfolio
        rf_rate (float): Per-period risk-free rate (default: 0.0)
        condition_number (float): Condition number of the covariance matrix

    Example:
        >>> means = np.array([0.01, 0.02])
        >>> cov = np.array([[0.0004, 0.0001],
        ...                 [0.0001, 0.0009]])
        >>> optimizer = PortfolioOptimizer(means, cov)
        >>> mvp_weights, mvp_stats = optimizer.minimum_variance_portfolio()
    """

    def __init__(
        self,
        expected_returns: np.ndarray,
        cov_matrix: np.ndarray,
        asset_names: Optional[List[str]] = None,
        rf_rate: float = 0.0,
        max_condition: float = 1e12,
        allow_pseudo_inverse: bool = False,
        frontier_tolerance: float = 1e-12
    ):
        """
        Initialize the Portfolio Optimizer.

        Args:
            expected_returns: Vector of expected returns for each asset
            cov_matrix: Covariance matrix of asset returns (n x n)
            asset_names: Optional list of asset names (default: Asset_1, Asset_2, ...)
            rf_rate: Per-period risk-free rate used for Sharpe ratios
            max_condition: Largest acceptable covariance condition number
            allow_pseudo_inverse: Use a pseudo-inverse instead of failing on a
                singular covariance matrix
            frontier_tolerance: Relative tolerance for the degenerate frontier test

        Raises:
            InvalidInputError: If dimensions don't match or fewer than 2 assets
            NumericDomainError: If inputs contain NaN/Inf or Sigma is asymmetric
            SingularCovarianceError: If Sigma is not invertible within tolerance
        """
        self.expected_returns = _readonly(np.asarray(expected_returns, dtype=float).flatten())
        self.cov_matrix = _readonly(np.asarray(cov_matrix, dtype=float))
        self.n_assets = len(self.expected_returns)
        self.rf_rate = rf_rate
        self.max_condition = max_condition
        self.allow_pseudo_inverse = allow_pseudo_inverse
        self.frontier_tolerance = frontier_tolerance

        self._validate_inputs()

        if asset_names is None:
            self.asset_names = [f"Asset_{i+1}" for i in range(self.n_assets)]
        else:
            self.asset_names = list(asset_names)
            if len(self.asset_names) != self.n_assets:
                raise InvalidInputError(
                    f"Got {len(self.asset_names)} asset names for {self.n_assets} assets"
                )

        self._cho = None
        self._pinv = None
        self._factorize()

        self._ones = np.ones(self.n_assets)
        self._inv_ones = self.solve(self._ones)
        self._inv_mu = self.solve(self.expected_returns)

    @classmethod
    def from_moments(cls, moments: MomentEstimates, **kwargs) -> 'PortfolioOptimizer':
        """Build an optimizer from estimated moments."""
        return cls(moments.expected_returns, moments.cov_matrix, moments.asset_names, **kwargs)

    def _validate_inputs(self):
        """Validate that inputs are properly formatted."""
        if self.n_assets < 2:
            raise InvalidInputError(
                f"Need at least 2 instruments to optimize a portfolio, got {self.n_assets}"
            )
        if self.cov_matrix.shape != (self.n_assets, self.n_assets):
            raise InvalidInputError(
                f"Covariance matrix shape {self.cov_matrix.shape} doesn't match "
                f"number of assets {self.n_assets}"
            )
        if not np.all(np.isfinite(self.expected_returns)):
            raise NumericDomainError("Expected returns contain NaN or Inf")
        if not np.all(np.isfinite(self.cov_matrix)):
            raise NumericDomainError("Covariance matrix contains NaN or Inf")
        _check_symmetric(self.cov_matrix)

    def _factorize(self):
        """Cholesky-factorize Sigma, or fall back to a pseudo-inverse if allowed."""
        eigenvalues = np.linalg.eigvalsh(self.cov_matrix)
        min_eig, max_eig = eigenvalues[0], eigenvalues[-1]
        self.condition_number = max_eig / min_eig if min_eig > 0 else np.inf

        problem = None
        if min_eig <= 0:
            problem = f"Covariance matrix is not positive definite (min eigenvalue {min_eig:.3e})"
        elif self.condition_number > self.max_condition:
            problem = (
                f"Covariance matrix is ill-conditioned (condition number "
                f"{self.condition_number:.3e} > {self.max_condition:.1e})"
            )
        else:
            try:
                self._cho = cho_factor(self.cov_matrix, lower=True)
            except LinAlgError as e:
                problem = f"Cholesky factorization failed: {e}"

        if problem is None:
            return

        if not self.allow_pseudo_inverse:
            raise SingularCovarianceError(problem)

        message = f"{problem}. Falling back to pseudo-inverse."
        warnings.warn(message, RuntimeWarning)
        logger.warning(message)
        self._cho = None
        self._pinv = np.linalg.pinv(self.cov_matrix, hermitian=True)

    def solve(self, b: np.ndarray) -> np.ndarray:
        """Return Sigma^-1 b."""
        b = np.asarray(b, dtype=float)
        if self._cho is not None:
            return cho_solve(self._cho, b)
        return self._pinv @ b

    def _check_weights(self, weights: np.ndarray) -> np.ndarray:
        weights = np.asarray(weights, dtype=float)
        if weights.shape != (self.n_assets,):
            raise InvalidInputError(
                f"Expected {self.n_assets} weights, got shape {weights.shape}"
            )
        return weights

    def portfolio_return(self, weights: np.ndarray) -> float:
        """
        Calculate expected portfolio return.

        Formula: mu_p = w^T * mu = sum(w_i * mu_i)

        Args:
            weights: Portfolio weights (must sum to 1)

        Returns:
            Expected portfolio return
        """
        weights = self._check_weights(weights)
        return float(np.dot(weights, self.expected_returns))

    def portfolio_variance(self, weights: np.ndarray) -> float:
        """
        Calculate portfolio variance using the quadratic form.

        Formula: sigma_p^2 = w^T * Sigma * w

        Args:
            weights: Portfolio weights

        Returns:
            Portfolio variance

        Raises:
            NumericDomainError: If the result is negative or not finite
        """
        weights = self._check_weights(weights)
        variance = float(np.dot(weights, np.dot(self.cov_matrix, weights)))
        if not np.isfinite(variance):
            raise NumericDomainError(f"Portfolio variance is not finite: {variance}")
        if variance < 0:
            raise NumericDomainError(f"Portfolio variance is negative: {variance:.3e}")
        return variance

    def portfolio_std(self, weights: np.ndarray) -> float:
        """
        Calculate portfolio standard deviation.

        Formula: sigma_p = sqrt(w^T * Sigma * w)
        """
        return float(np.sqrt(self.portfolio_variance(weights)))

    def portfolio_sharpe(self, weights: np.ndarray) -> float:
        """
        Calculate portfolio Sharpe ratio.

        Formula: Sharpe = (mu_p - rf) / sigma_p
        """
        return self.portfolio_stats(weights)['sharpe']

    def portfolio_stats(self, weights: np.ndarray) -> Dict[str, float]:
        """
        Calculate all portfolio statistics.

        Args:
            weights: Portfolio weights

        Returns:
            Dictionary containing mean, std, variance, and Sharpe ratio
        """
        weights = self._check_weights(weights)
        ret = self.portfolio_return(weights)
        var = self.portfolio_variance(weights)
        std = float(np.sqrt(var))
        sharpe = (ret - self.rf_rate) / std if std > 0 else 0.0

        return {
            'mean': ret,
            'std': std,
            'variance': var,
            'sharpe': sharpe
        }

    def frontier_constants(self) -> Dict[str, float]:
        """
        Scalars of the analytic frontier.

        Returns:
            Dictionary with C = 1'S^-1 1, D = 1'S^-1 mu, E = mu'S^-1 mu and
            the frontier denominator E - D^2/C
        """
        c = float(self._ones @ self._inv_ones)
        d = float(self._ones @ self._inv_mu)
        e = float(self.expected_returns @ self._inv_mu)
        return {'C': c, 'D': d, 'E': e, 'denominator': e - d * d / c}

    def minimum_variance_portfolio(self) -> Tuple[np.ndarray, Dict[str, float]]:
        """
        Find the Minimum Variance Portfolio (MVP).

        The MVP has the lowest possible risk among all fully invested
        portfolios. It is the leftmost point on the efficient frontier.

        Formula: w_mvp = Sigma^-1 1 / (1' Sigma^-1 1)

        Returns:
            Tuple of (weights, stats_dict)
        """
        c = float(self._ones @ self._inv_ones)
        if not np.isfinite(c) or c <= 0:
            raise NumericDomainError(f"1' Sigma^-1 1 must be positive, got {c}")
        weights = _readonly(self._inv_ones / c)
        return weights, self.portfolio_stats(weights)

    def efficient_portfolio(self, target_return: float) -> Tuple[np.ndarray, Dict[str, float]]:
        """
        Find the minimum variance portfolio achieving a target expected return.

        Targets below the MVP return are solved as well and land on the
        inefficient lower branch of the frontier parabola.

        Args:
            target_return: Target expected return (per period)

        Returns:
            Tuple of (weights, stats_dict)

        Raises:
            DegenerateFrontierError: If E - D^2/C is zero (all assets share
                the same expected return)
        """
        const = self.frontier_constants()
        c, d, denominator = const['C'], const['D'], const['denominator']
        scale = max(abs(const['E']), np.finfo(float).tiny)
        if abs(denominator) <= self.frontier_tolerance * scale:
            raise DegenerateFrontierError(
                f"Frontier is degenerate: E - D^2/C = {denominator:.3e}"
            )

        mvp_weights, mvp_stats = self.minimum_variance_portfolio()
        if target_return < mvp_stats['mean']:
            logger.debug(
                f"Target return {target_return:.6f} is below the MVP return "
                f"{mvp_stats['mean']:.6f}; portfolio is on the inefficient branch"
            )

        lam = 2.0 * (target_return - d / c) / denominator
        weights = mvp_weights + (lam / 2.0) * (self._inv_mu - (d / c) * self._inv_ones)
        weights = _readonly(weights)
        return weights, self.portfolio_stats(weights)

    def tangent_portfolio(self) -> Tuple[np.ndarray, Dict[str, float]]:
        """
        Find the Tangent Portfolio (Maximum Sharpe Ratio Portfolio).

        Formula: w_tan = Sigma^-1 (mu - rf) / (1' Sigma^-1 (mu - rf))

        Returns:
            Tuple of (weights, stats_dict)

        Raises:
            DegenerateFrontierError: If the excess returns leave no
                tangency point (denominator is zero)
        """
        inv_excess = self._inv_mu - self.rf_rate * self._inv_ones
        denominator = float(self._ones @ inv_excess)
        scale = max(float(np.abs(inv_excess).sum()), np.finfo(float).tiny)
        if abs(denominator) <= self.frontier_tolerance * scale:
            raise DegenerateFrontierError(
                "No tangent portfolio: risk-free rate equals the MVP return"
            )
        weights = _readonly(inv_excess / denominator)
        return weights, self.portfolio_stats(weights)

    def default_target_return(self) -> float:
        """
        Target return used when none is given: the highest single-asset mean.

        If that mean equals the MVP return (the MVP is the top asset itself),
        the target moves one MVP standard deviation above the MVP so that the
        efficient portfolio differs from it.
        """
        _, mvp_stats = self.minimum_variance_portfolio()
        target = float(np.max(self.expected_returns))
        if np.isclose(target, mvp_stats['mean'], rtol=1e-6, atol=1e-12):
            target = mvp_stats['mean'] + mvp_stats['std']
            logger.info(
                f"Highest asset mean equals the MVP return; using MVP mean + 1 std "
                f"({target:.6f}) as the target"
            )
        return target

    def get_asset_stats(self) -> Dict[str, Dict[str, float]]:
        """
        Get individual asset statistics.

        Returns:
            Dictionary mapping asset names to their stats
        """
        stats = {}
        for i, name in enumerate(self.asset_names):
            stats[name] = {
                'mean': float(self.expected_returns[i]),
                'std': float(np.sqrt(self.cov_matrix[i, i])),
                'variance': float(self.cov_matrix[i, i])
            }
        return stats

    def weights_frame(self, portfolios: Dict[str, np.ndarray]) -> pd.DataFrame:
        """Tabulate named weight vectors (rows = assets, cols = portfolios)."""
        return pd.DataFrame(
            {name: np.asarray(w, dtype=float) for name, w in portfolios.items()},
            index=pd.Index(self.asset_names, name='symbol')
        )

    def summary_report(self, target_return: Optional[float] = None) -> str:
        """
        Generate a summary report of the MVP and an efficient portfolio.

        Args:
            target_return: Target for the efficient portfolio
                (default: default_target_return())

        Returns:
            Formatted string report
        """
        if target_return is None:
            target_return = self.default_target_return()

        lines = []
        lines.append("=" * 70)
        lines.append("PORTFOLIO OPTIMIZATION SUMMARY REPORT")
        lines.append("=" * 70)

        lines.append("\n--- Individual Asset Statistics ---")
        lines.append(f"{'Asset':<12} {'Mean':>12} {'Std Dev':>12} {'Variance':>12}")
        lines.append("-" * 50)
        for name, stats in self.get_asset_stats().items():
            lines.append(
                f"{name:<12} {stats['mean']:>12.6f} {stats['std']:>12.6f} "
                f"{stats['variance']:>12.6f}"
            )
        lines.append(f"\nCovariance condition number: {self.condition_number:.3e}")

        sections = [
            ("Minimum Variance Portfolio (MVP)", self.minimum_variance_portfolio()),
            (f"Efficient Portfolio (target {target_return*100:.4f}%)",
             self.efficient_portfolio(target_return)),
        ]
        for title, (weights, stats) in sections:
            lines.append(f"\n--- {title} ---")
            lines.append("Weights:")
            for i, name in enumerate(self.asset_names):
                lines.append(f"  {name}: {weights[i]:.6f} ({weights[i]*100:.2f}%)")
            lines.append(f"Expected Return: {stats['mean']:.6f} ({stats['mean']*100:.2f}%)")
            lines.append(f"Standard Deviation: {stats['std']:.6f} ({stats['std']*100:.2f}%)")
            lines.append(f"Sharpe Ratio: {stats['sharpe']:.6f}")

        lines.append("\n" + "=" * 70)
        return "\n".join(lines)
