# Shared utilities: candle validation, circuit breaker
from quotex_signals.utils.validators import (
    build_series,
    normalize_candle_row,
    require_history,
    validate_candle,
    validate_series,
)

__all__ = [
    "build_series",
    "normalize_candle_row",
    "require_history",
    "validate_candle",
    "validate_series",
]
