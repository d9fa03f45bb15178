import tempfile
import unittest
from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from equity_frontier.core.frontier import TwoFundFrontier
from equity_frontier.core.loader import generate_sample_prices
from equity_frontier.core.optimizer import PortfolioOptimizer, estimate_moments
from equity_frontier.core.returns import build_return_matrix
from equity_frontier.visualization import (
    plot_efficient_frontier,
    plot_portfolio_weights,
    plot_price_history,
    plot_return_histograms,
)


class TestPlots(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.prices = generate_sample_prices(['AAA', 'BBB', 'CCC', 'DDD'], n_periods=500)
        cls.matrix = build_return_matrix(cls.prices)
        cls.optimizer = PortfolioOptimizer.from_moments(estimate_moments(cls.matrix))
        cls.mvp_w, _ = cls.optimizer.minimum_variance_portfolio()
        cls.eff_w, _ = cls.optimizer.efficient_portfolio(
            float(cls.optimizer.expected_returns.max())
        )
        cls.frontier = TwoFundFrontier(cls.optimizer, cls.mvp_w, cls.eff_w)

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        plt.close('all')
        self.tmp.cleanup()

    def test_price_history(self):
        path = self.dir / 'prices.png'
        fig = plot_price_history(self.prices, save_path=str(path))
        self.assertIsInstance(fig, Figure)
        self.assertTrue(path.exists())
        self.assertEqual(len(fig.axes[0].get_lines()), 4)

    def test_return_histograms(self):
        fig = plot_return_histograms(self.matrix)
        self.assertIsInstance(fig, Figure)
        visible = [ax for ax in fig.axes if ax.axison]
        self.assertEqual(len(visible), 4)

    def test_efficient_frontier(self):
        path = self.dir / 'frontier.png'
        fig = plot_efficient_frontier(
            self.optimizer, self.frontier, self.mvp_w, self.eff_w, save_path=str(path)
        )
        self.assertTrue(path.exists())
        curve = fig.axes[0].get_lines()[0]
        self.assertEqual(len(curve.get_xdata()), len(self.frontier))

    def test_portfolio_weights(self):
        fig = plot_portfolio_weights(self.mvp_w, self.optimizer.asset_names)
        self.assertEqual(len(fig.axes[0].patches), 4)


if __name__ == "__main__":
    unittest.main()
