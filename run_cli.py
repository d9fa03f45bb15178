"""
CLI entry point for portfolio analysis.

Usage:
    python run_cli.py                               # Run with sample data
    python run_cli.py --symbols AAPL MSFT KO        # Download from Yahoo Finance
    python run_cli.py --file prices.csv             # Run with a price file
    python run_cli.py --frequency daily             # Daily instead of monthly returns

For installed package, use: ef-analyze
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from equity_frontier.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
