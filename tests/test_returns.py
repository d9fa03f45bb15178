import unittest

import numpy as np
import pandas as pd

from equity_frontier.core.errors import InvalidInputError
from equity_frontier.core.returns import (
    ReturnMatrix,
    build_return_matrix,
    summarize_returns,
)

MONTH_ENDS = ['2020-01-31', '2020-02-28', '2020-03-31', '2020-04-30', '2020-05-29']


def price_rows(symbol, dates, prices):
    return pd.DataFrame({
        'symbol': symbol,
        'date': pd.to_datetime(dates),
        'adjusted': prices,
    })


class TestBuildReturnMatrix(unittest.TestCase):
    def setUp(self):
        # Several daily observations per month; only the last one counts
        self.prices = pd.concat([
            price_rows('AAA',
                       ['2020-01-02', '2020-01-31', '2020-02-14', '2020-02-28', '2020-03-31'],
                       [100.0, 110.0, 120.0, 121.0, 133.1]),
            price_rows('BBB',
                       ['2020-01-31', '2020-02-28', '2020-03-31'],
                       [50.0, 55.0, 44.0]),
        ], ignore_index=True)

    def test_monthly_uses_last_price_in_month(self):
        matrix = build_return_matrix(self.prices, frequency='monthly')
        self.assertEqual(matrix.asset_names, ['AAA', 'BBB'])
        self.assertEqual(matrix.n_periods, 2)
        np.testing.assert_allclose(matrix.values[:, 0], [0.1, 0.1])
        np.testing.assert_allclose(matrix.values[:, 1], [0.1, -0.2])
        self.assertEqual(str(matrix.periods[0]), '2020-02')

    def test_row_order_does_not_matter(self):
        shuffled = self.prices.sample(frac=1.0, random_state=7)
        expected = build_return_matrix(self.prices).values
        np.testing.assert_allclose(build_return_matrix(shuffled).values, expected)

    def test_daily_returns(self):
        prices = pd.concat([
            price_rows('AAA', ['2021-03-01', '2021-03-02', '2021-03-03'], [10.0, 11.0, 9.9]),
            price_rows('BBB', ['2021-03-01', '2021-03-02', '2021-03-03'], [20.0, 19.0, 19.0]),
        ])
        matrix = build_return_matrix(prices, frequency='daily')
        self.assertEqual(matrix.frequency, 'daily')
        self.assertEqual(matrix.periods_per_year, 252)
        np.testing.assert_allclose(matrix.values, [[0.1, -0.05], [-0.1, 0.0]])

    def test_mapping_input(self):
        prices = {
            'AAA': pd.DataFrame({'date': MONTH_ENDS[:3], 'adjusted': [1.0, 2.0, 3.0]}),
            'BBB': pd.DataFrame({'date': MONTH_ENDS[:3], 'adjusted': [4.0, 2.0, 3.0]}),
        }
        matrix = build_return_matrix(prices)
        np.testing.assert_allclose(matrix.values, [[1.0, -0.5], [0.5, 0.5]])

    def test_max_count_policy_excludes_short_history(self):
        prices = pd.concat([
            price_rows('AAA', MONTH_ENDS, [10, 11, 12, 13, 14]),
            price_rows('BBB', MONTH_ENDS, [20, 19, 21, 22, 20]),
            price_rows('CCC', MONTH_ENDS[1:], [5, 6, 5, 7]),
        ])
        with self.assertLogs('equity_frontier.core.returns', level='WARNING') as logs:
            matrix = build_return_matrix(prices, history_policy='max_count')
        self.assertEqual(matrix.asset_names, ['AAA', 'BBB'])
        self.assertEqual(matrix.n_periods, 4)
        self.assertIn('CCC', logs.output[0])

    def test_drop_periods_policy_keeps_all_instruments(self):
        prices = pd.concat([
            price_rows('AAA', MONTH_ENDS, [10, 11, 12, 13, 14]),
            price_rows('BBB', MONTH_ENDS, [20, 19, 21, 22, 20]),
            price_rows('CCC', MONTH_ENDS[1:], [5, 6, 5, 7]),
        ])
        matrix = build_return_matrix(prices, history_policy='drop_periods')
        self.assertEqual(matrix.asset_names, ['AAA', 'BBB', 'CCC'])
        self.assertEqual(matrix.n_periods, 3)
        self.assertFalse(np.isnan(matrix.values).any())

    def test_empty_input(self):
        with self.assertRaises(InvalidInputError):
            build_return_matrix(pd.DataFrame(columns=['symbol', 'date', 'adjusted']))
        with self.assertRaises(InvalidInputError):
            build_return_matrix({})

    def test_missing_column(self):
        prices = self.prices.drop(columns=['adjusted'])
        with self.assertRaises(InvalidInputError):
            build_return_matrix(prices)

    def test_non_positive_price(self):
        prices = self.prices.copy()
        prices.loc[0, 'adjusted'] = 0.0
        with self.assertRaises(InvalidInputError):
            build_return_matrix(prices)

    def test_duplicate_observation(self):
        prices = pd.concat([self.prices, self.prices.iloc[[0]]])
        with self.assertRaises(InvalidInputError):
            build_return_matrix(prices)

    def test_single_instrument(self):
        prices = price_rows('AAA', MONTH_ENDS, [10, 11, 12, 13, 14])
        with self.assertRaises(InvalidInputError):
            build_return_matrix(prices)

    def test_single_period(self):
        prices = pd.concat([
            price_rows('AAA', MONTH_ENDS[:2], [10, 11]),
            price_rows('BBB', MONTH_ENDS[:2], [20, 19]),
        ])
        with self.assertRaises(InvalidInputError):
            build_return_matrix(prices)

    def test_unknown_frequency_and_policy(self):
        with self.assertRaises(InvalidInputError):
            build_return_matrix(self.prices, frequency='hourly')
        with self.assertRaises(InvalidInputError):
            build_return_matrix(self.prices, history_policy='latest')


class TestReturnMatrix(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(3)
        self.frame = pd.DataFrame(rng.normal(0.01, 0.05, size=(24, 3)), columns=['A', 'B', 'C'])
        self.matrix = ReturnMatrix.from_frame(self.frame)

    def test_values_are_read_only(self):
        values = self.matrix.values
        with self.assertRaises(ValueError):
            values[0, 0] = 1.0

    def test_from_frame_drops_incomplete_rows(self):
        frame = self.frame.copy()
        frame.iloc[0, 1] = np.nan
        matrix = ReturnMatrix.from_frame(frame)
        self.assertEqual(matrix.n_periods, 23)
        self.assertEqual(matrix.n_assets, 3)

    def test_from_frame_rejects_unparsable_values(self):
        frame = self.frame.astype(object)
        frame.iloc[4, 2] = 'n/a%'
        with self.assertRaises(InvalidInputError) as ctx:
            ReturnMatrix.from_frame(frame)
        self.assertIn('C', str(ctx.exception))

    def test_from_frame_accepts_numeric_strings(self):
        frame = self.frame.astype(object)
        frame.iloc[0, 0] = '0.015'
        matrix = ReturnMatrix.from_frame(frame)
        self.assertEqual(matrix.n_periods, 24)
        self.assertAlmostEqual(matrix.values[0, 0], 0.015)

    def test_from_frame_rejects_single_column(self):
        with self.assertRaises(InvalidInputError):
            ReturnMatrix.from_frame(self.frame[['A']])

    def test_summarize_returns(self):
        table = summarize_returns(self.matrix)
        self.assertEqual(list(table.index), ['A', 'B', 'C'])
        self.assertIn('kurtosis', table.columns)
        np.testing.assert_allclose(table['mean'], self.frame.mean())
        np.testing.assert_allclose(table['annual_mean_pct'], self.frame.mean() * 12 * 100)
        np.testing.assert_allclose(
            table['annual_vol_pct'], self.frame.std(ddof=1) * np.sqrt(12) * 100
        )


if __name__ == "__main__":
    unittest.main()
