"""
Analysis configuration.

Holds every tunable assumption of the pipeline in one place so that the
CLI, the return builder and the optimizer agree on frequency, tolerances
and the frontier sweep.
"""

from typing import List, Optional

from equity_frontier.core.errors import InvalidInputError


class AnalysisConfig:
    """
    Stores all configurable assumptions for the analysis.

    Attributes:
        frequency: 'daily', 'weekly' or 'monthly' return periods
        history_policy: 'max_count' keeps only instruments with the longest
            return history; 'drop_periods' keeps all instruments and drops
            periods where any of them is missing
        rf_rate: Per-period risk-free rate used for Sharpe ratios
        max_condition: Largest acceptable condition number of the covariance
        allow_pseudo_inverse: Fall back to a pseudo-inverse for singular
            covariance matrices instead of failing
        frontier_start, frontier_stop, frontier_step: Mixing coefficient sweep
        target_return: Per-period target for the efficient portfolio
            (None = highest single-asset mean)
    """

    FREQUENCY_PERIODS = {
        'daily': 252,      # Trading days per year
        'weekly': 52,      # Weeks per year
        'monthly': 12,     # Months per year
    }

    HISTORY_POLICIES = ('max_count', 'drop_periods')

    def __init__(
        self,
        frequency: str = 'monthly',
        history_policy: str = 'max_count',
        rf_rate: float = 0.0,
        max_condition: float = 1e12,
        allow_pseudo_inverse: bool = False,
        frontier_start: float = -0.4,
        frontier_stop: float = 1.9,
        frontier_step: float = 0.01,
        target_return: Optional[float] = None,
    ):
        self.frequency = frequency
        self.history_policy = history_policy
        self.rf_rate = rf_rate
        self.max_condition = max_condition
        self.allow_pseudo_inverse = allow_pseudo_inverse
        self.frontier_start = frontier_start
        self.frontier_stop = frontier_stop
        self.frontier_step = frontier_step
        self.target_return = target_return

    @property
    def periods_per_year(self) -> int:
        """Number of return periods per year for annualization."""
        try:
            return self.FREQUENCY_PERIODS[self.frequency]
        except KeyError:
            raise InvalidInputError(
                f"Unknown frequency: {self.frequency}. "
                f"Use one of {sorted(self.FREQUENCY_PERIODS)}"
            ) from None

    def validate(self) -> 'AnalysisConfig':
        """Check every setting, raising InvalidInputError on the first bad one."""
        self.periods_per_year
        if self.history_policy not in self.HISTORY_POLICIES:
            raise InvalidInputError(
                f"Unknown history policy: {self.history_policy}. "
                f"Use one of {list(self.HISTORY_POLICIES)}"
            )
        if not self.max_condition > 1:
            raise InvalidInputError("max_condition must be greater than 1")
        if self.frontier_step <= 0:
            raise InvalidInputError("frontier_step must be positive")
        if self.frontier_stop < self.frontier_start:
            raise InvalidInputError("frontier_stop must not be below frontier_start")
        return self

    @classmethod
    def from_args(cls, args) -> 'AnalysisConfig':
        """Build a validated config from parsed command line arguments."""
        return cls(
            frequency=args.frequency,
            history_policy=args.history_policy,
            rf_rate=args.rf_rate,
            max_condition=args.max_condition,
            allow_pseudo_inverse=args.pseudo_inverse,
            frontier_start=args.c_start,
            frontier_stop=args.c_stop,
            frontier_step=args.c_step,
            target_return=args.target_return,
        ).validate()

    def summary_lines(self) -> List[str]:
        """Human readable description of the configuration."""
        target = (
            "highest asset mean" if self.target_return is None
            else f"{self.target_return*100:.4f}% per period"
        )
        return [
            f"Data Frequency: {self.frequency} ({self.periods_per_year} periods/year)",
            f"History Policy: {self.history_policy}",
            f"Risk-Free Rate: {self.rf_rate*100:.4f}% per period",
            f"Max Condition Number: {self.max_condition:.1e}",
            f"Pseudo-Inverse Fallback: {'Enabled' if self.allow_pseudo_inverse else 'Disabled'}",
            f"Frontier Sweep: c from {self.frontier_start} to {self.frontier_stop} "
            f"step {self.frontier_step}",
            f"Target Return: {target}",
        ]
