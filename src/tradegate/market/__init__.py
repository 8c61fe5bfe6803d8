"""Market context visible to the decision engine."""

from tradegate.market.snapshot import (
    MarketSnapshot,
    RegimeSnapshot,
    MarketSnapshotProvider,
    StaticSnapshotProvider,
)

__all__ = [
    'MarketSnapshot',
    'RegimeSnapshot',
    'MarketSnapshotProvider',
    'StaticSnapshotProvider',
]
