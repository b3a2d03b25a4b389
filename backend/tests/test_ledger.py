from __future__ import annotations

import json
import threading
from datetime import datetime, timezone

import httpx
import pytest

from alex_core.emergency import EmergencyProtocolGenerator
from alex_core.upstream import AnthropicClinicalClient, UpstreamError
from ledger import SQLiteCrisisEventLog, SQLiteLedgerDB, SQLiteUsageLedger


@pytest.fixture
def db(tmp_path) -> SQLiteLedgerDB:
    return SQLiteLedgerDB(str(tmp_path / "ledger.sqlite"))


def _clock(year: int, month: int):
    return lambda: datetime(year, month, 15, 10, 0, tzinfo=timezone.utc)


def test_increment_counts_per_provider_and_month(db):
    june = SQLiteUsageLedger(db, clock=_clock(2024, 6))
    july = SQLiteUsageLedger(db, clock=_clock(2024, 7))

    assert june.increment("dr-lee", request_id="r1", tier="essential", query_length=12) is True
    assert june.increment("dr-lee", request_id="r2") is True
    assert june.increment("dr-kim", request_id="r3") is True

    assert june.get_monthly_count("dr-lee") == 2
    assert june.get_monthly_count("dr-kim") == 1
    assert july.get_monthly_count("dr-lee") == 0


def test_increment_is_idempotent_per_request_id(db):
    ledger = SQLiteUsageLedger(db)

    assert ledger.increment("dr-lee", request_id="same") is True
    assert ledger.increment("dr-lee", request_id="same") is False
    assert ledger.get_monthly_count("dr-lee") == 1


def test_concurrent_increments_are_not_lost(db):
    ledger = SQLiteUsageLedger(db)

    def worker(index: int) -> None:
        ledger.increment("dr-lee", request_id=f"req-{index}")

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert ledger.get_monthly_count("dr-lee") == 10


def test_schema_survives_reopen(tmp_path):
    path = str(tmp_path / "ledger.sqlite")
    SQLiteUsageLedger(SQLiteLedgerDB(path)).increment("dr-lee", request_id="persisted")

    assert SQLiteUsageLedger(SQLiteLedgerDB(path)).get_monthly_count("dr-lee") == 1


def test_crisis_event_is_recorded_with_protocol(db):
    crisis_log = SQLiteCrisisEventLog(db)
    protocol = EmergencyProtocolGenerator().generate("I want to kill myself")

    event_id = crisis_log.record("dr-lee", "I want to kill myself", protocol, session_key="session-9")

    events = crisis_log.list_events("dr-lee")
    assert len(events) == 1
    event = events[0]
    assert event["id"] == event_id
    assert event["session_key"] == "session-9"
    assert event["severity_level"] == "severe"
    assert event["actions"][0] == "Contact patient immediately"
    assert crisis_log.list_events("someone-else") == []


def _anthropic_transport(handler):
    return httpx.MockTransport(handler)


def test_anthropic_client_sends_prompt_context_and_joins_text():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"content": [{"type": "text", "text": "Check TSH."}, {"type": "text", "text": "Recheck in 6 weeks."}]},
        )

    client = AnthropicClinicalClient(
        api_key="test-key",
        model="claude-test",
        transport=_anthropic_transport(handler),
    )

    text = client.complete("  Thyroid workup?  ", {"urgency_level": "routine", "sales": {"organization_type": "solo"}})

    assert text == "Check TSH.\nRecheck in 6 weeks."
    assert seen["headers"]["x-api-key"] == "test-key"
    assert seen["body"]["model"] == "claude-test"
    assert seen["body"]["messages"] == [{"role": "user", "content": "Thyroid workup?"}]
    assert "evaluating the platform" in seen["body"]["system"]
    assert '"urgency_level": "routine"' in seen["body"]["system"]


def test_anthropic_client_requires_api_key():
    client = AnthropicClinicalClient(api_key="", model="claude-test")
    with pytest.raises(UpstreamError):
        client.complete("hello", {})


def test_anthropic_client_surfaces_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(529, json={"error": {"type": "overloaded_error", "message": "Overloaded"}})

    client = AnthropicClinicalClient(api_key="k", model="m", transport=_anthropic_transport(handler))
    with pytest.raises(UpstreamError, match="Overloaded"):
        client.complete("hello", {})


def test_anthropic_client_rejects_empty_completion():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"content": [{"type": "tool_use", "id": "x"}]})

    client = AnthropicClinicalClient(api_key="k", model="m", transport=_anthropic_transport(handler))
    with pytest.raises(UpstreamError, match="empty"):
        client.complete("hello", {})
