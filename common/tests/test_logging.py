import json
import logging
import sys
from decimal import Decimal

from config.logging import JsonFormatter, SamplingFilter


def _record(msg="cart.item_added", level=logging.INFO, **extra):
    record = logging.LogRecord("storefront.cart", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_merges_extra_fields():
    record = _record(event="cart.item_added", cart_id=7, total=Decimal("99.50"))

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["name"] == "storefront.cart"
    assert payload["message"] == "cart.item_added"
    assert payload["event"] == "cart.item_added"
    assert payload["cart_id"] == 7
    assert payload["total"] == "99.50"
    assert payload["time"].endswith("Z")
    assert "args" not in payload and "lineno" not in payload


def test_json_formatter_includes_exception_text():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("storefront.cart", logging.ERROR, __file__, 1, "cart.history_failed", None, sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))
    assert "ValueError: boom" in payload["exc_info"]


def test_sampling_filter_keeps_allow_listed_events():
    drop_all = SamplingFilter(rate=0.0, levels=["INFO"], allow_events=["order_status_changed"])

    assert drop_all.filter(_record("order_status_changed")) is True
    assert drop_all.filter(_record("anything", event="order_status_changed")) is True
    assert drop_all.filter(_record("order_placed")) is False
    assert drop_all.filter(_record("order_placed", level=logging.WARNING)) is True


def test_sampling_filter_bad_rate_defaults_to_keep_all():
    assert SamplingFilter(rate="often").filter(_record()) is True
