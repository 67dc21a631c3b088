"""
Engine Configuration

Loads config.yaml into typed settings. Missing keys fall back to the
defaults below; unknown keys are ignored.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import pytz
import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / 'config.yaml'


@dataclass(frozen=True)
class StrategyParams:
    """Tunable thresholds shared by the confluence scorer and detectors."""
    min_volume: float = 0.0               # volume guard, 0 disables
    atr_mult_stop: float = 1.5            # fallback stop distance in ATRs
    r_targets: Tuple[float, ...] = (1.0, 2.0)
    patient_candle_threshold: float = 0.5
    rsi_oversold: float = 35.0
    rsi_overbought: float = 65.0
    volume_spike_mult: float = 1.5
    volume_lookback: int = 10


@dataclass(frozen=True)
class SessionConfig:
    timezone: str = 'US/Eastern'
    open: time = time(9, 30)
    orb_min_minutes: int = 5
    orb_max_minutes: int = 60
    orb_range_minutes: int = 15

    @property
    def tz(self):
        return pytz.timezone(self.timezone)


@dataclass(frozen=True)
class EngineConfig:
    max_bars_1m: int = 500
    max_bars_5m: int = 200
    max_bars_60m: int = 100
    min_bars_1m: int = 200
    min_bars_5m: int = 50
    min_bars_60m: int = 50
    event_queue_size: int = 1000
    symbol_queue_size: int = 0            # 0 = unbounded
    log_level: str = 'INFO'
    session: SessionConfig = field(default_factory=SessionConfig)
    strategy: StrategyParams = field(default_factory=StrategyParams)


def _positive_int(value: Any, name: str, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be integer, got {type(value).__name__}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {value}")
    return value


def _number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return float(value)


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        # YAML 1.1 reads unquoted 09:30 as sexagesimal minutes
        return time(value // 60, value % 60)
    try:
        hours, minutes = str(value).split(':')
        return time(int(hours), int(minutes))
    except ValueError:
        raise ValueError(f"session.open must look like HH:MM, got {value!r}")


_NUMBER_FIELDS = ('min_volume', 'atr_mult_stop', 'patient_candle_threshold',
                  'rsi_oversold', 'rsi_overbought', 'volume_spike_mult')


def validate_strategy(params: StrategyParams) -> StrategyParams:
    """
    Check strategy parameters and normalize their types.

    Used for both the config file and runtime updates.

    Returns:
        Params with float numbers and a tuple of R targets

    Raises:
        ValueError: On a negative or non-numeric value, an empty target
            list, a non-positive lookback or inverted RSI bounds
    """
    updates: Dict[str, Any] = {
        key: _number(getattr(params, key), f"strategy.{key}") for key in _NUMBER_FIELDS
    }
    updates['volume_lookback'] = _positive_int(params.volume_lookback, 'strategy.volume_lookback')

    targets = params.r_targets
    if not isinstance(targets, (list, tuple)) or not targets:
        raise ValueError("strategy.r_targets must be a non-empty list")
    updates['r_targets'] = tuple(_number(t, 'strategy.r_targets[]') for t in targets)

    params = replace(params, **updates)
    if params.rsi_oversold >= params.rsi_overbought:
        raise ValueError("strategy.rsi_oversold must be below strategy.rsi_overbought")
    return params


def _parse_strategy(raw: Dict[str, Any]) -> StrategyParams:
    fields = set(StrategyParams.__dataclass_fields__)
    updates = {key: value for key, value in raw.items() if key in fields}
    return validate_strategy(replace(StrategyParams(), **updates))


def _parse_session(raw: Dict[str, Any]) -> SessionConfig:
    updates: Dict[str, Any] = {}

    if 'timezone' in raw:
        try:
            pytz.timezone(raw['timezone'])
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown session.timezone: {raw['timezone']}")
        updates['timezone'] = raw['timezone']

    if 'open' in raw:
        updates['open'] = _parse_time(raw['open'])

    for key in ('orb_min_minutes', 'orb_max_minutes', 'orb_range_minutes'):
        if key in raw:
            updates[key] = _positive_int(raw[key], f"session.{key}", allow_zero=True)

    session = replace(SessionConfig(), **updates)
    if session.orb_min_minutes > session.orb_max_minutes:
        raise ValueError("session.orb_min_minutes must not exceed session.orb_max_minutes")
    return session


def config_from_dict(raw: Optional[Dict[str, Any]]) -> EngineConfig:
    """Build an EngineConfig from the parsed YAML mapping."""
    raw = raw or {}
    engine = raw.get('engine') or {}
    updates: Dict[str, Any] = {}

    for key in ('max_bars_1m', 'max_bars_5m', 'max_bars_60m',
                'min_bars_1m', 'min_bars_5m', 'min_bars_60m', 'event_queue_size'):
        if key in engine:
            updates[key] = _positive_int(engine[key], f"engine.{key}")

    if 'symbol_queue_size' in engine:
        updates['symbol_queue_size'] = _positive_int(
            engine['symbol_queue_size'], 'engine.symbol_queue_size', allow_zero=True
        )

    log_level = (raw.get('logging') or {}).get('level')
    if log_level is not None:
        log_level = str(log_level).upper()
        if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Invalid logging.level: {log_level}")
        updates['log_level'] = log_level

    updates['session'] = _parse_session(raw.get('session') or {})
    updates['strategy'] = _parse_strategy(raw.get('strategy') or {})

    return replace(EngineConfig(), **updates)


def load_config(path: Union[str, Path, None] = None) -> EngineConfig:
    """Load configuration from config.yaml"""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found at {config_path}")

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f)

    config = config_from_dict(raw)
    logger.debug(f"Loaded configuration from {config_path}")
    return config
