"""
Price Data Providers
====================

This module handles loading historical price observations from:
- Yahoo Finance (via yfinance)
- CSV and Excel files in long format (one row per symbol and date)
- A reproducible synthetic generator for demos and tests

Every provider returns the same normalized long table:

    symbol, date, open, high, low, close, volume, adjusted

where 'adjusted' is the split/dividend adjusted close. Provider failures
(unknown symbol, empty history, network or file errors) are raised as
DataProviderError and never swallowed.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import yfinance as yf

from equity_frontier.core.errors import DataProviderError, InvalidInputError

logger = logging.getLogger(__name__)

PRICE_COLUMNS = ['symbol', 'date', 'open', 'high', 'low', 'close', 'volume', 'adjusted']

# Vendor column names -> normalized names (matched case-insensitively)
COLUMN_ALIASES = {
    'symbol': 'symbol',
    'ticker': 'symbol',
    'date': 'date',
    'datetime': 'date',
    'open': 'open',
    'high': 'high',
    'low': 'low',
    'close': 'close',
    'volume': 'volume',
    'adj close': 'adjusted',
    'adj_close': 'adjusted',
    'adjclose': 'adjusted',
    'adjusted_close': 'adjusted',
    'adjusted close': 'adjusted',
    'adjusted': 'adjusted',
}

DateLike = Union[str, pd.Timestamp, None]


def normalize_price_table(frame: pd.DataFrame, symbol: Optional[str] = None) -> pd.DataFrame:
    """
    Normalize a vendor price table to the long format used by the pipeline.

    Args:
        frame: Raw price table (a date index is moved into a column)
        symbol: Symbol to assign when the table holds a single instrument

    Returns:
        DataFrame with PRICE_COLUMNS that are present, sorted by symbol and date

    Raises:
        InvalidInputError: If symbol, date or adjusted price cannot be located
    """
    frame = frame.copy()
    if isinstance(frame.index, pd.DatetimeIndex):
        frame = frame.rename_axis(frame.index.name or 'date').reset_index()

    renamed = {}
    for col in frame.columns:
        key = str(col).strip().lower()
        if key in COLUMN_ALIASES and COLUMN_ALIASES[key] not in renamed.values():
            renamed[col] = COLUMN_ALIASES[key]
    frame = frame.rename(columns=renamed)

    if symbol is not None:
        frame['symbol'] = symbol

    missing = [col for col in ('symbol', 'date', 'adjusted') if col not in frame.columns]
    if missing:
        raise InvalidInputError(f"Price table is missing columns: {missing}")

    dates = pd.to_datetime(frame['date'])
    if getattr(dates.dt, 'tz', None) is not None:
        dates = dates.dt.tz_localize(None)
    frame['date'] = dates
    frame['symbol'] = frame['symbol'].astype(str)

    columns = [col for col in PRICE_COLUMNS if col in frame.columns]
    frame = frame[columns].sort_values(['symbol', 'date'], kind='mergesort')
    return frame.reset_index(drop=True)


def _filter_dates(frame: pd.DataFrame, start: DateLike, end: DateLike) -> pd.DataFrame:
    if start is not None:
        frame = frame[frame['date'] >= pd.Timestamp(start)]
    if end is not None:
        frame = frame[frame['date'] <= pd.Timestamp(end)]
    return frame


def _check_symbols(symbols: Iterable[str]) -> List[str]:
    symbols = [str(s).strip().upper() for s in symbols if str(s).strip()]
    if not symbols:
        raise InvalidInputError("At least one symbol is required")
    return list(dict.fromkeys(symbols))


class PriceDataProvider:
    """
    Interface for sources of historical price observations.

    Subclasses implement fetch() and return a table produced by
    normalize_price_table().
    """

    name = 'provider'

    def fetch(
        self,
        symbols: Sequence[str],
        start: DateLike = None,
        end: DateLike = None
    ) -> pd.DataFrame:
        raise NotImplementedError


class YahooPriceProvider(PriceDataProvider):
    """
    Download daily OHLCV history from Yahoo Finance.

    Example:
        >>> provider = YahooPriceProvider()
        >>> prices = provider.fetch(['AAPL', 'MSFT'], start='2015-01-01')
    """

    name = 'yahoo'

    def __init__(self, interval: str = '1d'):
        """
        Args:
            interval: yfinance bar interval (1d, 1wk, 1mo)
        """
        self.interval = interval

    def fetch(
        self,
        symbols: Sequence[str],
        start: DateLike = None,
        end: DateLike = None
    ) -> pd.DataFrame:
        """
        Fetch price history for each symbol.

        Raises:
            DataProviderError: If a download fails or returns no rows
        """
        symbols = _check_symbols(symbols)
        frames = []
        for symbol in symbols:
            logger.info(f"Downloading {symbol} from Yahoo Finance")
            try:
                history = yf.Ticker(symbol).history(
                    start=start,
                    end=end,
                    interval=self.interval,
                    auto_adjust=False,
                    actions=False,
                )
            except Exception as e:
                raise DataProviderError(f"Failed to download {symbol}: {e}") from e

            if history is None or history.empty:
                raise DataProviderError(
                    f"No price history for {symbol} (unknown or delisted symbol?)"
                )
            frames.append(normalize_price_table(history, symbol=symbol))
            logger.info(f"  {symbol}: {len(history)} observations")

        return pd.concat(frames, ignore_index=True)


class FilePriceProvider(PriceDataProvider):
    """
    Read price observations from a long-format CSV or Excel file.

    The file needs symbol, date and adjusted close columns; vendor names such
    as 'Ticker', 'Date' and 'Adj Close' are recognized.
    """

    name = 'file'

    def __init__(self, file_path: Union[str, Path], sheet_name: Optional[str] = None):
        """
        Args:
            file_path: Path to a .csv, .xlsx or .xls file
            sheet_name: Sheet to read from Excel workbooks (default: first sheet)
        """
        self.file_path = Path(file_path)
        self.sheet_name = sheet_name

        if self.file_path.suffix.lower() not in ('.csv', '.xlsx', '.xls'):
            raise InvalidInputError(f"Unsupported file type: {self.file_path.suffix}")

    def load_file(self) -> pd.DataFrame:
        """Read and normalize the whole file."""
        if not self.file_path.exists():
            raise DataProviderError(f"File not found: {self.file_path}")

        logger.info(f"Loading prices from: {self.file_path}")
        try:
            if self.file_path.suffix.lower() == '.csv':
                raw = pd.read_csv(self.file_path)
            else:
                raw = pd.read_excel(self.file_path, sheet_name=self.sheet_name or 0)
        except (OSError, ValueError) as e:
            raise DataProviderError(f"Could not read {self.file_path}: {e}") from e

        return normalize_price_table(raw)

    def fetch(
        self,
        symbols: Optional[Sequence[str]] = None,
        start: DateLike = None,
        end: DateLike = None
    ) -> pd.DataFrame:
        """
        Fetch the requested symbols (all symbols in the file when None).

        Raises:
            DataProviderError: If the file is missing or lacks a symbol
        """
        frame = self.load_file()
        frame['symbol'] = frame['symbol'].str.upper()

        if symbols is not None:
            symbols = _check_symbols(symbols)
            available = set(frame['symbol'])
            unknown = [s for s in symbols if s not in available]
            if unknown:
                raise DataProviderError(
                    f"Symbols not found in {self.file_path.name}: {', '.join(unknown)}"
                )
            frame = frame[frame['symbol'].isin(symbols)]

        frame = _filter_dates(frame, start, end)
        if frame.empty:
            raise DataProviderError(f"No price history in {self.file_path.name} for the request")
        return frame.reset_index(drop=True)


def generate_sample_prices(
    symbols: Sequence[str] = ('AAPL', 'AXP', 'BA', 'CAT'),
    n_periods: int = 1260,
    start: str = '2015-01-02',
    seed: int = 42
) -> pd.DataFrame:
    """
    Generate a synthetic daily price table for testing.

    Prices follow correlated geometric random walks driven by one common
    market factor, on business days.

    Args:
        symbols: Instrument identifiers
        n_periods: Number of business days per instrument
        start: First business day
        seed: Random seed for reproducibility

    Returns:
        Normalized long price table
    """
    symbols = _check_symbols(symbols)
    rng = np.random.default_rng(seed)
    n_assets = len(symbols)
    dates = pd.bdate_range(start=start, periods=n_periods)

    # Realistic daily drift and volatility levels
    drift = np.linspace(0.0002, 0.0008, n_assets)
    beta = np.linspace(0.6, 1.3, n_assets)
    idio_vol = np.linspace(0.008, 0.016, n_assets)

    market = rng.normal(0.0, 0.01, size=(n_periods, 1))
    noise = rng.normal(0.0, 1.0, size=(n_periods, n_assets)) * idio_vol
    returns = drift + market * beta + noise
    returns[0] = 0.0

    adjusted = 100.0 * np.cumprod(1.0 + returns, axis=0)
    # Dividends make the unadjusted close drift above the adjusted close
    adj_factor = np.linspace(0.95, 1.0, n_periods).reshape(-1, 1)
    close = adjusted / adj_factor
    open_ = close * (1.0 + rng.normal(0.0, 0.003, size=close.shape))
    spread = np.abs(rng.normal(0.0, 0.005, size=close.shape))
    high = np.maximum(open_, close) * (1.0 + spread)
    low = np.minimum(open_, close) * (1.0 - spread)
    volume = rng.integers(1_000_000, 10_000_000, size=close.shape)

    frames = []
    for j, symbol in enumerate(symbols):
        frames.append(pd.DataFrame({
            'symbol': symbol,
            'date': dates,
            'open': open_[:, j],
            'high': high[:, j],
            'low': low[:, j],
            'close': close[:, j],
            'volume': volume[:, j],
            'adjusted': adjusted[:, j],
        }))
    return pd.concat(frames, ignore_index=True)


class SamplePriceProvider(PriceDataProvider):
    """Provider backed by generate_sample_prices()."""

    name = 'sample'

    def __init__(self, n_periods: int = 1260, seed: int = 42):
        self.n_periods = n_periods
        self.seed = seed

    def fetch(
        self,
        symbols: Sequence[str] = ('AAPL', 'AXP', 'BA', 'CAT'),
        start: DateLike = None,
        end: DateLike = None
    ) -> pd.DataFrame:
        frame = generate_sample_prices(
            symbols,
            n_periods=self.n_periods,
            start=str(pd.Timestamp(start).date()) if start is not None else '2015-01-02',
            seed=self.seed,
        )
        frame = _filter_dates(frame, None, end)
        if frame.empty:
            raise DataProviderError("No sample prices before the requested end date")
        return frame.reset_index(drop=True)
