"""Tests for message formatting."""

import pytest

from token_price_engine.alerter.formatter import format_alert_triggered, format_price
from token_price_engine.storage.repos import AlertDirection, AlertDTO


def _alert(**overrides) -> AlertDTO:
    values = {
        "id": 1,
        "group_id": 1,
        "chat_id": -100,
        "token_ref": "pepe",
        "direction": AlertDirection.ABOVE,
        "target_price": 0.00001,
    }
    values.update(overrides)
    return AlertDTO(**values)


class TestNumberFormatting:
    """Tests for price formatting."""

    @pytest.mark.parametrize(
        ("price", "expected"),
        [
            (64_000.5, "$64,000.50"),
            (1000, "$1,000.00"),
            (2.5, "$2.50"),
            (1.23456, "$1.2346"),
            (0.5, "$0.5000"),
            (0.00123456, "$0.001235"),
            (0.00001234, "$0.00001234"),
            (0.000000012345, "$0.0000000123"),
        ],
    )
    def test_format_price(self, price: float, expected: str) -> None:
        assert format_price(price) == expected


class TestAlertMessage:
    """Tests for the triggered-alert notification."""

    def test_above(self) -> None:
        message = format_alert_triggered(_alert(), 0.000012)

        assert message.startswith("<b>🚨 ALERT TRIGGERED</b>")
        assert "📈 <b>PEPE</b> has risen above $0.00001000!" in message
        assert "💰 <b>Current Price:</b> $0.00001200" in message
        assert "Chain" not in message

    def test_below_with_chain(self) -> None:
        message = format_alert_triggered(
            _alert(direction=AlertDirection.BELOW, target_price=2000, token_ref="eth", chain="ethereum"),
            1999.0,
        )

        assert "📉 <b>ETH</b> has fallen below $2,000.00!" in message
        assert "⛓ <b>Chain:</b> ethereum" in message

    def test_escapes_user_text(self) -> None:
        message = format_alert_triggered(_alert(token_ref="<b>x</b>"), 1.0)

        assert "&lt;B&gt;X&lt;/B&gt;" in message

