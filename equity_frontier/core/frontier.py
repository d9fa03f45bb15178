"""
Two-Fund Frontier Generator
===========================

The Two-Fund Separation Theorem states that any portfolio on the efficient
frontier can be constructed as a linear combination of any two distinct
efficient portfolios.

Given the minimum variance portfolio (w_mvp: mean m1, std s1) and a second
efficient portfolio (w_eff: mean m2, std s2), the portfolio

    w(c) = (1 - c) * w_mvp + c * w_eff

has

    mean = (1 - c) * m1 + c * m2
    var  = (1 - c)^2 * s1^2 + c^2 * s2^2 + 2 * c * (1 - c) * cov12

where cov12 = w_mvp' Sigma w_eff. Sweeping c over [0, 1] spans the frontier
between the two portfolios; values outside [0, 1] extrapolate beyond them.
"""

from dataclasses import asdict, dataclass
from typing import Iterator

import numpy as np
import pandas as pd

from equity_frontier.core.errors import InvalidInputError, NumericDomainError
from equity_frontier.core.optimizer import PortfolioOptimizer, _readonly
from equity_frontier.core.returns import annualize_return, annualize_volatility


@dataclass(frozen=True)
class FrontierPoint:
    """One portfolio on the two-fund frontier."""

    coefficient: float
    expected_return: float
    volatility: float
    period_return: float
    period_volatility: float


class TwoFundFrontier:
    """
    Lazy, finite and restartable sweep of two-fund portfolio combinations.

    Every call to iter() starts a fresh pass over the coefficient grid, so the
    same frontier can be rendered, tabulated and re-read without recomputing
    the reference portfolios.

    Example:
        >>> mvp_w, _ = optimizer.minimum_variance_portfolio()
        >>> eff_w, _ = optimizer.efficient_portfolio(0.02)
        >>> frontier = TwoFundFrontier(optimizer, mvp_w, eff_w)
        >>> [(p.volatility, p.expected_return) for p in frontier]
    """

    def __init__(
        self,
        optimizer: PortfolioOptimizer,
        mvp_weights: np.ndarray,
        efficient_weights: np.ndarray,
        start: float = -0.4,
        stop: float = 1.9,
        step: float = 0.01,
        periods_per_year: int = 12,
        percent: bool = True
    ):
        """
        Args:
            optimizer: Optimizer holding the covariance matrix and means
            mvp_weights: Minimum variance portfolio weights
            efficient_weights: Second efficient portfolio, distinct from the MVP
            start: First mixing coefficient
            stop: Last mixing coefficient (inclusive)
            step: Coefficient increment
            periods_per_year: Return periods per year used for annualization
            percent: Report annualized figures in percent

        Raises:
            InvalidInputError: Bad sweep range, wrong weight length or
                identical reference portfolios
        """
        if step <= 0:
            raise InvalidInputError(f"Frontier step must be positive, got {step}")
        if stop < start:
            raise InvalidInputError(f"Frontier stop {stop} is below start {start}")
        if periods_per_year <= 0:
            raise InvalidInputError(
                f"periods_per_year must be positive, got {periods_per_year}"
            )

        mvp_weights = _readonly(mvp_weights)
        efficient_weights = _readonly(efficient_weights)
        expected_shape = (optimizer.n_assets,)
        if mvp_weights.shape != expected_shape or efficient_weights.shape != expected_shape:
            raise InvalidInputError(
                f"Reference portfolios must have {optimizer.n_assets} weights"
            )
        if np.allclose(mvp_weights, efficient_weights, rtol=0.0, atol=1e-12):
            raise InvalidInputError("Efficient portfolio must differ from the MVP")

        self.optimizer = optimizer
        self.mvp_weights = mvp_weights
        self.efficient_weights = efficient_weights
        self.start = start
        self.stop = stop
        self.step = step
        self.periods_per_year = periods_per_year
        self.percent = percent

        # Last coefficient never exceeds stop
        self._n_points = int(np.floor((stop - start) / step + 1e-9)) + 1

        mvp_stats = optimizer.portfolio_stats(mvp_weights)
        eff_stats = optimizer.portfolio_stats(efficient_weights)
        self._mu1, self._var1 = mvp_stats['mean'], mvp_stats['variance']
        self._mu2, self._var2 = eff_stats['mean'], eff_stats['variance']
        self._cov12 = float(np.dot(mvp_weights, np.dot(optimizer.cov_matrix, efficient_weights)))

    def __len__(self) -> int:
        return self._n_points

    def __iter__(self) -> Iterator[FrontierPoint]:
        for i in range(self._n_points):
            yield self.point_at(self.start + i * self.step)

    def coefficients(self) -> np.ndarray:
        return self.start + np.arange(self._n_points) * self.step

    def weights_at(self, coefficient: float) -> np.ndarray:
        """Weights of the combination (1 - c) * w_mvp + c * w_eff."""
        return (1.0 - coefficient) * self.mvp_weights + coefficient * self.efficient_weights

    def point_at(self, coefficient: float) -> FrontierPoint:
        c = coefficient
        mu_p = (1.0 - c) * self._mu1 + c * self._mu2
        var_p = ((1.0 - c) ** 2 * self._var1
                 + c ** 2 * self._var2
                 + 2.0 * c * (1.0 - c) * self._cov12)
        if not np.isfinite(var_p) or var_p < 0:
            raise NumericDomainError(
                f"Frontier variance at c={c:.4f} is invalid: {var_p:.3e}"
            )
        sigma_p = float(np.sqrt(var_p))

        return FrontierPoint(
            coefficient=float(c),
            expected_return=float(annualize_return(mu_p, self.periods_per_year, self.percent)),
            volatility=float(annualize_volatility(sigma_p, self.periods_per_year, self.percent)),
            period_return=float(mu_p),
            period_volatility=sigma_p,
        )

    def to_frame(self) -> pd.DataFrame:
        """Materialize the sweep as a DataFrame, one row per coefficient."""
        return pd.DataFrame(
            [asdict(point) for point in self],
            columns=['coefficient', 'expected_return', 'volatility',
                     'period_return', 'period_volatility']
        )
