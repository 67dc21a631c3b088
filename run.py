#!/usr/bin/env python
"""
Setup Detection Engine - Historical Replay

Replays 1-minute bars from a CSV file through the engine and logs every
setup, target and stop event.

Usage:
    python run.py bars.csv --symbol MNQ
    python run.py bars.csv --config config.yaml --log-level debug
"""

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

from setup_engine import ALL_EVENTS, SetupEngine, load_config
from setup_engine.replay import load_bars_csv, replay, summarize

logger = logging.getLogger(__name__)


def print_results(rows, counts):
    """Print replay results in a table."""
    print("\n" + "=" * 90)
    print(f"  REPLAY RESULTS - {counts['bars']} bars, {counts['events']} events")
    print("=" * 90)
    print(f"{'Setup':<14} {'Type':<20} {'Dir':<6} {'Status':<14} {'Entry':>10} {'Stop':>10} {'Conf':>5}")
    print("-" * 90)

    for row in rows:
        print(
            f"{row['id']:<14} {row['type']:<20} {row['direction']:<6} {row['status']:<14} "
            f"{row['entry']:>10.2f} {row['stop']:>10.2f} {row['confluence']:>5}"
        )

    print("-" * 90)
    by_status = Counter(row['status'] for row in rows)
    print("  " + ", ".join(f"{status}: {n}" for status, n in sorted(by_status.items())) if rows else "  No setups")
    print("=" * 90)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Replay 1-minute bars through the setup detection engine'
    )
    parser.add_argument(
        'csv',
        type=Path,
        help='CSV file with time, open, high, low, close, volume columns'
    )
    parser.add_argument(
        '--symbol',
        type=str,
        help='Symbol for files without a symbol column'
    )
    parser.add_argument(
        '--config',
        type=Path,
        help='Path to config.yaml (default: repository config.yaml)'
    )
    parser.add_argument(
        '--no-trades',
        action='store_true',
        help='Do not synthesize trade prints from bar closes'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        help='Override log level from config'
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading configuration: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        bars = load_bars_csv(args.csv, symbol=args.symbol, session=config.session)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not load bars: {e}")
        sys.exit(1)

    engine = SetupEngine(config)
    engine.emitter.subscribe(
        ALL_EVENTS,
        lambda event: logger.info(f"{event.event_type}: {event.setup.id} ({event.setup.status.value})")
    )

    try:
        counts = replay(engine, bars, synthesize_trades=not args.no_trades)
    except KeyboardInterrupt:
        print("\n\nInterrupted")
        sys.exit(130)

    print_results(summarize(engine), counts)


if __name__ == '__main__':
    main()
