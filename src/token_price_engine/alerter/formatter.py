"""Message formatting for Telegram delivery.

Messages use Telegram's HTML parse mode, so every piece of user or
upstream text is escaped before it is embedded.
"""

from __future__ import annotations

from html import escape

from token_price_engine.storage.repos import AlertDirection, AlertDTO


def format_price(price: float) -> str:
    """Format a USD price with precision tiered by magnitude."""
    if price >= 1000:
        return f"${price:,.2f}"
    if price >= 1:
        return f"${_trim(f'{price:.4f}', 2)}"
    if price >= 0.0001:
        return f"${_trim(f'{price:.6f}', 4)}"
    return f"${_trim(f'{price:.10f}', 8)}"


def _trim(text: str, min_decimals: int) -> str:
    """Strip trailing zeros but keep at least ``min_decimals`` digits."""
    whole, _, frac = text.partition(".")
    frac = frac.rstrip("0")
    if len(frac) < min_decimals:
        frac = frac.ljust(min_decimals, "0")
    return f"{whole}.{frac}"


def format_alert_triggered(alert: AlertDTO, current_price: float) -> str:
    """Build the notification for a crossed alert threshold."""
    token = escape(alert.token_ref.upper())
    if alert.direction is AlertDirection.ABOVE:
        headline = f"📈 <b>{token}</b> has risen above {format_price(alert.target_price)}!"
    else:
        headline = f"📉 <b>{token}</b> has fallen below {format_price(alert.target_price)}!"

    lines = [
        "<b>🚨 ALERT TRIGGERED</b>",
        "",
        headline,
        "",
        f"💰 <b>Current Price:</b> {format_price(current_price)}",
    ]
    if alert.chain:
        lines.append(f"⛓ <b>Chain:</b> {escape(alert.chain)}")
    return "\n".join(lines)

