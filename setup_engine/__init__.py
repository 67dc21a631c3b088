"""
Setup detection engine: multi-timeframe indicators, confluence-gated setup
detectors and live setup lifecycle tracking for streaming market data.
"""
from .config import EngineConfig, SessionConfig, StrategyParams, load_config, validate_strategy
from .engine import SetupEngine, SymbolWorker
from .events import EventEmitter, ALL_EVENTS
from .models import (
    Bar,
    Trade,
    Quote,
    Direction,
    SetupType,
    SetupStatus,
    Setup,
    IndicatorSnapshot,
    ConfluenceFactor,
    SetupDetected,
    TargetHit,
    StopLossHit,
    SETUP_DETECTED,
    TARGET_HIT,
    STOP_LOSS_HIT,
)
from .streaming import StreamingEngine

__all__ = [
    # Runtime
    'SetupEngine',
    'SymbolWorker',
    'StreamingEngine',
    'EventEmitter',
    'ALL_EVENTS',

    # Configuration
    'EngineConfig',
    'SessionConfig',
    'StrategyParams',
    'load_config',
    'validate_strategy',

    # Data model
    'Bar',
    'Trade',
    'Quote',
    'Direction',
    'SetupType',
    'SetupStatus',
    'Setup',
    'IndicatorSnapshot',
    'ConfluenceFactor',

    # Events
    'SetupDetected',
    'TargetHit',
    'StopLossHit',
    'SETUP_DETECTED',
    'TARGET_HIT',
    'STOP_LOSS_HIT',
]
