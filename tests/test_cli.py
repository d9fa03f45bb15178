import logging
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from equity_frontier.cli.main import (
    LOGGER_NAME,
    AnalysisCheckpoint,
    build_parser,
    main,
    run_full_analysis,
)
from equity_frontier.core.config import AnalysisConfig
from equity_frontier.core.errors import InvalidInputError
from equity_frontier.core.frontier import TwoFundFrontier
from equity_frontier.core.loader import generate_sample_prices
from equity_frontier.core.optimizer import MomentEstimates, PortfolioOptimizer


def close_package_logger():
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


class TestMain(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        self.common = ['--output-dir', str(self.dir / 'out'), '--log-dir', str(self.dir / 'logs')]

    def tearDown(self):
        close_package_logger()
        self.tmp.cleanup()

    def test_sample_run_writes_tables(self):
        code = main(self.common + ['--no-plots'])
        self.assertEqual(code, 0)

        frontier = pd.read_csv(self.dir / 'out' / 'frontier.csv')
        self.assertEqual(len(frontier), 231)
        weights = pd.read_csv(self.dir / 'out' / 'weights.csv', index_col='symbol')
        self.assertAlmostEqual(weights['MVP'].sum(), 1.0, places=9)
        self.assertAlmostEqual(weights['Efficient'].sum(), 1.0, places=9)
        self.assertTrue((self.dir / 'out' / 'summary.csv').exists())
        self.assertEqual(len(list((self.dir / 'logs').glob('log_*.txt'))), 1)

    def test_file_run_with_plots(self):
        csv_path = self.dir / 'prices.csv'
        generate_sample_prices(['AAA', 'BBB', 'CCC'], n_periods=400).to_csv(csv_path, index=False)
        code = main(self.common + ['--file', str(csv_path), '--frequency', 'weekly',
                                   '--c-start', '0', '--c-stop', '1', '--c-step', '0.1'])
        self.assertEqual(code, 0)
        self.assertTrue((self.dir / 'out' / 'efficient_frontier.png').exists())
        self.assertTrue((self.dir / 'out' / 'return_histograms.png').exists())
        frontier = pd.read_csv(self.dir / 'out' / 'frontier.csv')
        self.assertEqual(len(frontier), 11)

    def test_provider_failure_returns_error_code(self):
        code = main(self.common + ['--file', str(self.dir / 'missing.csv'), '--no-plots'])
        self.assertEqual(code, 1)

    def test_invalid_sweep_returns_error_code(self):
        code = main(self.common + ['--c-step', '0', '--no-plots'])
        self.assertEqual(code, 1)

    def test_parser_rejects_unknown_frequency(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args(['--frequency', 'hourly'])


class TestRunFullAnalysis(unittest.TestCase):
    def test_results_without_outputs(self):
        prices = generate_sample_prices(['AAA', 'BBB', 'CCC', 'DDD'], n_periods=600)
        config = AnalysisConfig(target_return=0.02)
        results = run_full_analysis(prices, config, save_outputs=False, save_plots=False)

        self.assertEqual(results['returns'].n_assets, 4)
        self.assertAlmostEqual(results['efficient']['stats']['mean'], 0.02, places=9)
        self.assertIsNotNone(results['tangent'])
        self.assertEqual(list(results['weights'].columns), ['MVP', 'Efficient', 'Tangent'])
        self.assertEqual(len(results['frontier_frame']), 231)

    @mock.patch('equity_frontier.cli.main.estimate_moments')
    def test_default_target_when_mvp_is_top_asset(self, estimate):
        # Sigma^-1 1 is proportional to [1, 0], so the MVP holds only AAA
        estimate.return_value = MomentEstimates(
            expected_returns=np.array([0.02, 0.01]),
            cov_matrix=np.array([[0.01, 0.01], [0.01, 0.04]]),
            asset_names=['AAA', 'BBB'],
            n_periods=60,
        )
        prices = generate_sample_prices(['AAA', 'BBB'], n_periods=600)
        results = run_full_analysis(prices, AnalysisConfig(), save_outputs=False,
                                    save_plots=False)

        np.testing.assert_allclose(results['mvp']['weights'], [1.0, 0.0], atol=1e-9)
        self.assertAlmostEqual(results['efficient']['target'], 0.02 + 0.1, places=9)
        self.assertAlmostEqual(results['efficient']['stats']['mean'], 0.12, places=9)
        self.assertEqual(len(results['frontier_frame']), 231)

    def test_figures_are_closed_after_saving(self):
        prices = generate_sample_prices(['AAA', 'BBB', 'CCC'], n_periods=400)
        plt.close('all')
        with tempfile.TemporaryDirectory() as tmp:
            run_full_analysis(prices, save_outputs=False, output_dir=tmp)
            self.assertEqual(len(list(Path(tmp).glob('*.png'))), 5)
        self.assertEqual(plt.get_fignums(), [])

        with tempfile.TemporaryDirectory() as tmp:
            run_full_analysis(prices, save_outputs=False, output_dir=tmp, show_plots=True)
        self.assertEqual(len(plt.get_fignums()), 5)
        plt.close('all')


class TestDefaultTargetReturn(unittest.TestCase):
    def test_highest_asset_mean(self):
        optimizer = PortfolioOptimizer([0.01, 0.02], [[0.0004, 0.0001], [0.0001, 0.0009]])
        self.assertEqual(optimizer.default_target_return(), 0.02)

    def test_moves_above_mvp_when_they_coincide(self):
        optimizer = PortfolioOptimizer([0.02, 0.01], [[0.01, 0.01], [0.01, 0.04]])
        mvp_w, mvp_stats = optimizer.minimum_variance_portfolio()
        target = optimizer.default_target_return()
        self.assertGreater(target, mvp_stats['mean'])

        eff_w, _ = optimizer.efficient_portfolio(target)
        frontier = TwoFundFrontier(optimizer, mvp_w, eff_w)
        self.assertEqual(len(list(frontier)), 231)


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        config = AnalysisConfig().validate()
        self.assertEqual(config.periods_per_year, 12)
        self.assertEqual(len(config.summary_lines()), 7)

    def test_from_args(self):
        args = build_parser().parse_args(['--frequency', 'daily', '--pseudo-inverse',
                                          '--target-return', '0.001'])
        config = AnalysisConfig.from_args(args)
        self.assertEqual(config.periods_per_year, 252)
        self.assertTrue(config.allow_pseudo_inverse)
        self.assertEqual(config.target_return, 0.001)

    def test_invalid_settings(self):
        for kwargs in ({'frequency': 'hourly'}, {'history_policy': 'latest'},
                       {'frontier_step': -0.1}, {'frontier_start': 2.0},
                       {'max_condition': 0.5}):
            with self.assertRaises(InvalidInputError):
                AnalysisConfig(**kwargs).validate()

    def test_checkpoint_tracks_steps(self):
        checkpoint = AnalysisCheckpoint(logging.getLogger('test_checkpoint'))
        checkpoint.start_step('one')
        checkpoint.complete_step('one')
        summary = checkpoint.get_progress_summary()
        self.assertEqual(summary['steps_completed'], ['one'])
        self.assertEqual(summary['current_step'], 'one')


if __name__ == "__main__":
    unittest.main()
