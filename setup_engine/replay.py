"""
Historical Replay

Loads 1-minute OHLCV bars from CSV and feeds them through a SetupEngine,
optionally synthesizing one trade print per bar close so the lifecycle
manager can resolve targets and stops.

CSV columns: time (or date / timestamp), open, high, low, close, volume and
an optional symbol column. Numeric times are unix seconds; naive datetimes
are read in the session timezone.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from .config import SessionConfig
from .engine import SetupEngine
from .models import Bar, Trade

logger = logging.getLogger(__name__)

TIME_COLUMNS = ('time', 'date', 'timestamp', 'datetime')
PRICE_COLUMNS = ('open', 'high', 'low', 'close')


def _epoch_seconds(column: pd.Series, timezone: str) -> pd.Series:
    if pd.api.types.is_numeric_dtype(column):
        return column.astype(float)

    parsed = pd.to_datetime(column)
    if parsed.dt.tz is None:
        parsed = parsed.dt.tz_localize(timezone)
    epoch = pd.Timestamp('1970-01-01', tz='UTC')
    return (parsed.dt.tz_convert('UTC') - epoch) / pd.Timedelta(seconds=1)


def load_bars_csv(path: Union[str, Path], symbol: Optional[str] = None,
                  session: Optional[SessionConfig] = None) -> pd.DataFrame:
    """
    Read a bar file into a normalized DataFrame sorted by time.

    Returns:
        DataFrame with columns symbol, timestamp, open, high, low, close, volume

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If required columns are missing or no symbol is known
    """
    session = session or SessionConfig()
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Bar file not found at {csv_path}")

    df = pd.read_csv(csv_path)
    df.columns = [str(c).strip().lower() for c in df.columns]

    time_col = next((c for c in TIME_COLUMNS if c in df.columns), None)
    if time_col is None:
        raise ValueError(f"{csv_path.name}: no time column (expected one of {', '.join(TIME_COLUMNS)})")

    missing = [c for c in PRICE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{csv_path.name}: missing columns {', '.join(missing)}")

    if symbol:
        df['symbol'] = symbol
    elif 'symbol' not in df.columns:
        raise ValueError(f"{csv_path.name}: no symbol column and no symbol given")

    if 'volume' not in df.columns:
        df['volume'] = 0.0

    df['timestamp'] = _epoch_seconds(df[time_col], session.timezone)
    df = df.dropna(subset=['timestamp', *PRICE_COLUMNS])
    df = df.sort_values('timestamp', kind='stable').reset_index(drop=True)

    logger.info(f"Loaded {len(df)} bars from {csv_path}")
    return df[['symbol', 'timestamp', 'open', 'high', 'low', 'close', 'volume']]


def iter_bars(df: pd.DataFrame):
    for row in df.itertuples(index=False):
        yield Bar(
            symbol=str(row.symbol),
            timestamp=float(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )


def replay(engine: SetupEngine, df: pd.DataFrame, synthesize_trades: bool = True) -> Dict[str, int]:
    """
    Feed every bar of `df` into `engine`, delivering events after each bar.

    Returns:
        Counts of bars replayed and events delivered
    """
    bars = 0
    delivered = 0

    for bar in iter_bars(df):
        engine.process_bar(bar)
        if synthesize_trades:
            engine.process_trade(Trade(
                symbol=bar.symbol,
                timestamp=bar.timestamp + 60,
                price=bar.close,
                size=bar.volume,
            ))
        delivered += engine.emitter.dispatch_pending()
        bars += 1

        if bars % 1000 == 0:
            logger.debug(f"Replayed {bars} bars")

    logger.info(f"Replay complete: {bars} bars, {delivered} events")
    return {'bars': bars, 'events': delivered}


def summarize(engine: SetupEngine) -> List[dict]:
    """One row per setup: id, type, direction, status, entry, stop."""
    return [
        {
            'id': setup.id,
            'type': setup.setup_type.value,
            'direction': setup.direction.value,
            'status': setup.status.value,
            'entry': setup.entry_price,
            'stop': setup.stop_loss,
            'confluence': setup.confluence_score,
        }
        for symbol in engine.workers
        for setup in engine.get_setups_for_symbol(symbol)
    ]
