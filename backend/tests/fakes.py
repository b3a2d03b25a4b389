from __future__ import annotations

from typing import Any


class FakeLedger:
    def __init__(self, usage: int = 0, *, fail_read: bool = False, fail_write: bool = False) -> None:
        self.usage = usage
        self.fail_read = fail_read
        self.fail_write = fail_write
        self.increments: list[dict[str, Any]] = []

    def get_monthly_count(self, provider_id: str) -> int:
        if self.fail_read:
            raise RuntimeError("ledger unavailable")
        return self.usage

    def increment(self, provider_id: str, **details: Any) -> bool:
        if self.fail_write:
            raise RuntimeError("ledger write failed")
        self.increments.append({"provider_id": provider_id, **details})
        self.usage += 1
        return True


class FakeCrisisLog:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[dict[str, Any]] = []

    def record(self, provider_id: str, message: str, protocol, **details: Any) -> str:
        if self.fail:
            raise RuntimeError("crisis log unavailable")
        self.events.append({"provider_id": provider_id, "message": message, "protocol": protocol, **details})
        return f"event-{len(self.events)}"


class FakeUpstream:
    def __init__(self, text: str = "Consider a thyroid panel.", *, error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def complete(self, message: str, system_prompt_context: dict[str, Any]) -> str:
        self.calls.append({"message": message, "context": system_prompt_context})
        if self.error is not None:
            raise self.error
        return self.text
