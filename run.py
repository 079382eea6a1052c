#!/usr/bin/env python
"""
Apex Decision Engine - Historical Replay

Replays a CSV of primary OHLCV bars through the configured strategy and
reports the trade intents it would have emitted.

Usage:
    python run.py --csv data/nq_1min.csv --output intents.csv

The configuration path defaults to config.yaml next to this script and may
be overridden with APEX_CONFIG (environment or .env) or --config.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from apex_engine.config import ConfigError, load_config
from apex_engine.engine import create_engine
from apex_engine.replay import load_bars_csv, run_replay

logger = logging.getLogger(__name__)


def print_startup_banner(config, csv_path):
    """Print run information"""
    spec = config.instrument_spec
    print("\n" + "=" * 70)
    print("  Apex Decision Engine - Replay")
    print("=" * 70)
    print(f"  Strategy: {config.strategy}")
    print(f"  Instrument: {spec.symbol} (tick {spec.tick_size} = ${spec.tick_value:.2f})")
    print(f"  Account: ${config.plan.account_start_balance:,.0f} "
          f"(threshold ${config.plan.trailing_threshold:,.0f})")
    print(f"  Bars: {csv_path}")
    print("=" * 70 + "\n")


def main():
    """Main entry point"""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description='Replay historical bars through the Apex decision engine'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=os.getenv('APEX_CONFIG', str(Path(__file__).parent / 'config.yaml')),
        help='Path to config.yaml (default: $APEX_CONFIG or ./config.yaml)'
    )
    parser.add_argument(
        '--csv',
        type=str,
        required=True,
        help='CSV of primary bars with time, open, high, low, close, volume'
    )
    parser.add_argument(
        '--output',
        type=str,
        help='Write emitted intents to this CSV file'
    )
    parser.add_argument(
        '--strategy',
        type=str,
        choices=['adaptive', 'momentum'],
        help='Override strategy from config'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        default='info',
        help='Log level (default: info)'
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config)
        if args.strategy:
            config.strategy = args.strategy
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        sys.exit(1)

    log_level = 'debug' if config.debug_mode else args.log_level
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print_startup_banner(config, args.csv)

    try:
        bars = load_bars_csv(args.csv, config.sessions.timezone)
    except (OSError, ValueError) as e:
        print(f"Error loading bars: {e}")
        sys.exit(1)

    engine = create_engine(config)
    result = run_replay(bars, engine)

    for key, value in result.summary().items():
        print(f"  {key:>14}: {value}")

    if args.output:
        result.to_frame().to_csv(args.output, index=False)
        logger.info(f"Wrote {len(result.intents)} intents to {args.output}")


if __name__ == '__main__':
    main()
