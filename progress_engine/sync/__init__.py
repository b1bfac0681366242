"""Relay de progreso push hacia el ground-truth store."""

from .relay import BackgroundSyncRelay, RelayResult

__all__ = ["BackgroundSyncRelay", "RelayResult"]
