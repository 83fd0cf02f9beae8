"""Logging setup for the barrier CLI."""

from __future__ import annotations

from .barrierLogger import BarrierLogFormatter, configure_logging

__all__ = ["BarrierLogFormatter", "configure_logging"]
