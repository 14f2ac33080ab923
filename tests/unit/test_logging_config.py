import json
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

from coinscope.logging_config import REDACTED, _redact_filter, _serialize_record


def make_record(**extra: Any) -> dict[str, Any]:
    """Helper with the subset of a Loguru record the patcher reads."""
    return {
        "time": datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
        "level": SimpleNamespace(name="INFO"),
        "name": "coinscope.client",
        "file": SimpleNamespace(name="client.py"),
        "line": 42,
        "function": "get_assets",
        "message": "Fetched 50 assets.",
        "exception": None,
        "extra": dict(extra),
    }


def test_redact_filter_masks_sensitive_extras() -> None:
    record = make_record(api_key="cg-secret", asset="bitcoin", token=42)

    assert _redact_filter(record) is True
    assert record["extra"]["api_key"] == REDACTED
    assert record["extra"]["asset"] == "bitcoin"
    assert record["extra"]["token"] == 42


def test_serialize_record_writes_one_json_object() -> None:
    """Tests the JSON-lines payload used by the file sink."""
    record = make_record(asset="bitcoin", password="hunter2")

    _serialize_record(record)

    entry = json.loads(record["extra"]["serialized"])
    assert entry["ts"] == "2024-05-01T12:00:00+00:00"
    assert entry["level"] == "INFO"
    assert entry["where"] == "client.py:42 (get_assets)"
    assert entry["msg"] == "Fetched 50 assets."
    assert entry["context"] == {"asset": "bitcoin", "password": REDACTED}
    assert "exception" not in entry
