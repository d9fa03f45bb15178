"""
Return Matrix Builder
=====================

Turns a long table of daily price observations (one row per symbol and
trading day) into a dense matrix of simple returns:

1. Resample each instrument to the requested period (daily, weekly or
   monthly, keeping the last adjusted price in each period)
2. Compute r_t = P_t / P_{t-1} - 1 within each instrument's own series,
   ordered by date
3. Drop the leading undefined return of every instrument
4. Align instruments on a common period index (rows = periods,
   columns = symbols)

Instruments with incomplete history are handled by a configurable policy:

- 'max_count': keep only instruments whose return count equals the maximum
  (preserves a common dense window, biases toward long-lived instruments)
- 'drop_periods': keep every instrument and drop periods where any of them
  has no return
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Union

import numpy as np
import pandas as pd

from equity_frontier.core.config import AnalysisConfig
from equity_frontier.core.errors import InvalidInputError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ('symbol', 'date', 'adjusted')

# pandas period codes for resampled frequencies
PERIOD_CODES = {
    'weekly': 'W',
    'monthly': 'M',
}


@dataclass(frozen=True, eq=False)
class ReturnMatrix:
    """
    Dense T x N matrix of simple returns.

    Attributes:
        frame: DataFrame indexed by period with one column per symbol
        frequency: 'daily', 'weekly' or 'monthly'
    """

    frame: pd.DataFrame
    frequency: str = 'monthly'

    @classmethod
    def from_frame(cls, returns: pd.DataFrame, frequency: str = 'monthly') -> 'ReturnMatrix':
        """
        Wrap an existing returns table (rows = periods, cols = assets).

        Rows with a missing value are dropped.

        Raises:
            InvalidInputError: If a cell is not numeric, or fewer than
                2 periods or 2 assets remain
        """
        _periods_per_year(frequency)
        numeric = returns.apply(pd.to_numeric, errors='coerce')
        unparsable = numeric.isna() & returns.notna()
        if unparsable.to_numpy().any():
            bad_columns = [str(col) for col in unparsable.columns[unparsable.any()]]
            raise InvalidInputError(
                f"Returns contain non-numeric values in: {', '.join(bad_columns)}"
            )
        frame = numeric.dropna(how='any')
        if not np.all(np.isfinite(frame.to_numpy(dtype=float))):
            raise InvalidInputError("Returns contain infinite values")
        _check_dimensions(frame.shape[0], frame.shape[1])
        return cls(frame.copy(), frequency)

    @property
    def periods_per_year(self) -> int:
        return _periods_per_year(self.frequency)

    @property
    def values(self) -> np.ndarray:
        """Read-only T x N array of returns."""
        values = self.frame.to_numpy(dtype=float, copy=True)
        values.flags.writeable = False
        return values

    @property
    def asset_names(self) -> List[str]:
        return [str(col) for col in self.frame.columns]

    @property
    def periods(self) -> pd.Index:
        return self.frame.index

    @property
    def n_periods(self) -> int:
        return self.frame.shape[0]

    @property
    def n_assets(self) -> int:
        return self.frame.shape[1]

    def to_frame(self) -> pd.DataFrame:
        """Independent copy of the underlying DataFrame."""
        return self.frame.copy()


def _periods_per_year(frequency: str) -> int:
    try:
        return AnalysisConfig.FREQUENCY_PERIODS[frequency]
    except KeyError:
        raise InvalidInputError(
            f"Unknown frequency: {frequency}. "
            f"Use one of {sorted(AnalysisConfig.FREQUENCY_PERIODS)}"
        ) from None


def _check_dimensions(n_periods: int, n_assets: int):
    if n_periods < 2:
        raise InvalidInputError(
            f"Need at least 2 return periods to estimate a covariance, got {n_periods}"
        )
    if n_assets < 2:
        raise InvalidInputError(
            f"Need at least 2 instruments to optimize a portfolio, got {n_assets}"
        )


def _as_price_table(prices: Union[pd.DataFrame, Mapping[str, pd.DataFrame]]) -> pd.DataFrame:
    """Accept either a long table or a mapping of symbol -> price frame."""
    if isinstance(prices, Mapping):
        frames = []
        for symbol, frame in prices.items():
            frame = frame.copy()
            frame['symbol'] = symbol
            frames.append(frame)
        if not frames:
            raise InvalidInputError("Price table is empty")
        return pd.concat(frames, ignore_index=True)
    return prices


def build_return_matrix(
    prices: Union[pd.DataFrame, Mapping[str, pd.DataFrame]],
    frequency: str = 'monthly',
    history_policy: str = 'max_count'
) -> ReturnMatrix:
    """
    Build a dense return matrix from adjusted price observations.

    Args:
        prices: Long table with 'symbol', 'date' and 'adjusted' columns,
            or a mapping of symbol to a frame with 'date' and 'adjusted'
        frequency: 'daily', 'weekly' or 'monthly'
        history_policy: 'max_count' or 'drop_periods'

    Returns:
        ReturnMatrix with rows = periods and columns = symbols in order of
        first appearance

    Raises:
        InvalidInputError: Empty or malformed input, non-positive prices,
            duplicate observations, or fewer than 2 periods / instruments
    """
    _periods_per_year(frequency)
    if history_policy not in AnalysisConfig.HISTORY_POLICIES:
        raise InvalidInputError(
            f"Unknown history policy: {history_policy}. "
            f"Use one of {list(AnalysisConfig.HISTORY_POLICIES)}"
        )

    prices = _as_price_table(prices)
    if prices is None or len(prices) == 0:
        raise InvalidInputError("Price table is empty")

    missing = [col for col in REQUIRED_COLUMNS if col not in prices.columns]
    if missing:
        raise InvalidInputError(f"Price table is missing columns: {missing}")

    frame = prices.loc[:, list(REQUIRED_COLUMNS)].copy()
    frame['symbol'] = frame['symbol'].astype(str)
    frame['date'] = pd.to_datetime(frame['date'])
    frame['adjusted'] = pd.to_numeric(frame['adjusted'], errors='coerce')

    adjusted = frame['adjusted'].to_numpy(dtype=float)
    if not np.all(np.isfinite(adjusted)):
        raise InvalidInputError("Adjusted prices contain missing or non-numeric values")
    if np.any(adjusted <= 0):
        raise InvalidInputError("Adjusted prices must be strictly positive")
    if frame.duplicated(subset=['symbol', 'date']).any():
        raise InvalidInputError("Price table has duplicate (symbol, date) observations")

    symbol_order = list(pd.unique(frame['symbol']))

    # Lags below are only meaningful on date-ordered series
    frame = frame.sort_values(['symbol', 'date'], kind='mergesort')

    if frequency == 'daily':
        frame['period'] = frame['date']
    else:
        frame['period'] = frame['date'].dt.to_period(PERIOD_CODES[frequency])
        frame = frame.groupby(['symbol', 'period'], sort=True, as_index=False)['adjusted'].last()

    previous = frame.groupby('symbol')['adjusted'].shift(1)
    frame['return'] = frame['adjusted'] / previous - 1.0
    frame = frame.dropna(subset=['return'])

    if frame.empty:
        raise InvalidInputError("Need at least 2 return periods to estimate a covariance, got 0")

    counts = frame.groupby('symbol').size()
    if history_policy == 'max_count':
        keep = set(counts.index[counts == counts.max()])
    else:
        keep = set(counts.index)

    dropped = [symbol for symbol in symbol_order if symbol not in keep]
    if dropped:
        logger.warning(f"Excluding instruments with incomplete history: {', '.join(dropped)}")
    columns = [symbol for symbol in symbol_order if symbol in keep]

    matrix = frame[frame['symbol'].isin(keep)].pivot(
        index='period', columns='symbol', values='return'
    )
    matrix = matrix.reindex(columns=columns)
    matrix.columns.name = None

    n_before = len(matrix)
    matrix = matrix.dropna(how='any')
    if len(matrix) < n_before:
        logger.info(f"Dropped {n_before - len(matrix)} periods with missing returns")

    _check_dimensions(matrix.shape[0], matrix.shape[1])

    logger.debug(
        f"Built {frequency} return matrix: {matrix.shape[0]} periods x "
        f"{matrix.shape[1]} instruments"
    )
    return ReturnMatrix(matrix, frequency)


def annualize_return(period_return, periods_per_year: int, percent: bool = True):
    """Scale a per-period mean return to a yearly figure."""
    scale = 100.0 if percent else 1.0
    return period_return * periods_per_year * scale


def annualize_volatility(period_std, periods_per_year: int, percent: bool = True):
    """Scale a per-period standard deviation to a yearly figure (sqrt-time)."""
    scale = 100.0 if percent else 1.0
    return period_std * np.sqrt(periods_per_year) * scale


def summarize_returns(matrix: ReturnMatrix) -> pd.DataFrame:
    """
    Descriptive statistics table, one row per instrument.

    Columns: count, mean, std, min, max, skew, kurtosis, plus annualized
    mean and volatility in percent.
    """
    frame = matrix.frame
    ppy = matrix.periods_per_year

    mean = frame.mean()
    std = frame.std(ddof=1)
    table = pd.DataFrame({
        'count': frame.count(),
        'mean': mean,
        'std': std,
        'min': frame.min(),
        'max': frame.max(),
        'skew': frame.skew(),
        'kurtosis': frame.kurt(),
        'annual_mean_pct': annualize_return(mean, ppy),
        'annual_vol_pct': annualize_volatility(std, ppy),
    })
    table.index.name = 'symbol'
    return table


def returns_by_instrument(matrix: ReturnMatrix) -> Dict[str, np.ndarray]:
    """Map each symbol to its return series, for histogram rendering."""
    return {name: matrix.frame[name].to_numpy(dtype=float) for name in matrix.frame.columns}
