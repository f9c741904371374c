"""Alerting - message formatting and notification delivery."""

from token_price_engine.alerter.formatter import format_alert_triggered, format_price
from token_price_engine.alerter.telegram import TelegramChannel

__all__ = [
    "TelegramChannel",
    "format_alert_triggered",
    "format_price",
]
