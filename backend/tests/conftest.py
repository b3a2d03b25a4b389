from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = Path(__file__).resolve().parent
for candidate in (BACKEND_DIR, TESTS_DIR):
    if str(candidate) not in sys.path:
        sys.path.insert(0, str(candidate))

from alex_core import ChatOrchestrator, InMemorySessionStore, TierPolicyEngine  # noqa: E402
from fakes import FakeCrisisLog, FakeLedger, FakeUpstream  # noqa: E402


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    db_path = tmp_path / "alex-test.sqlite"
    monkeypatch.setenv("ALEX_DB_PATH", str(db_path))
    monkeypatch.setenv("ALEX_ALLOW_DEMO", "true")
    # Keep CI deterministic; tests swap in a fake upstream where they need one.
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.delenv("ALEX_TAXONOMY_PATH", raising=False)

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def provider_headers() -> Callable[..., dict[str, str]]:
    def _make(provider_id: str, tier: str = "essential") -> dict[str, str]:
        return {"X-Provider-Id": provider_id, "X-Subscription-Tier": tier}

    return _make


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def crisis_log() -> FakeCrisisLog:
    return FakeCrisisLog()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream(
        "Start with a TSH level.\n1. Order TSH and free T4\n2. Review medications\n"
        "3. Reassess in six weeks\n4. Refer if abnormal"
    )


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def orchestrator(store, ledger, crisis_log, upstream) -> ChatOrchestrator:
    return ChatOrchestrator(
        store=store,
        tiers=TierPolicyEngine(),
        ledger=ledger,
        crisis_log=crisis_log,
        upstream=upstream,
    )
