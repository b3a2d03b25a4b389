from __future__ import annotations

import re
import uuid
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from alex_core import (
    AnthropicClinicalClient,
    ChatOrchestrator,
    InMemorySessionStore,
    ProviderIdentity,
    SessionReaper,
    TierPolicyEngine,
    load_taxonomies,
    resolve_context,
)
from alex_core.analytics import clinical_summary, session_analytics
from alex_core.config import Settings, bootstrap_local_env
from alex_core.logging_config import configure_logging
from alex_core.taxonomy import default_taxonomies
from alex_core.tiers import DEFAULT_TIERS, apply_overrides
from ledger import SQLiteCrisisEventLog, SQLiteLedgerDB, SQLiteUsageLedger

bootstrap_local_env()
configure_logging()
logger = structlog.get_logger(__name__)

DEMO_TOKEN = "demo-token"
DEMO_PROVIDER_ID = "demo-user"
DEMO_TIER = "professional"

_TRUSTED_PROVIDER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


class ChatRequest(BaseModel):
    message: str
    context: dict[str, Any] | str | None = None
    session_id: uuid.UUID | None = None

    @field_validator("message")
    @classmethod
    def _message_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Message is required")
        return value.strip()


class AlexApp:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings.from_env()
        self.taxonomies = (
            load_taxonomies(self.settings.taxonomy_path) if self.settings.taxonomy_path else default_taxonomies()
        )
        self.db = SQLiteLedgerDB(self.settings.db_path)
        self.ledger = SQLiteUsageLedger(self.db)
        self.crisis_log = SQLiteCrisisEventLog(self.db)
        self.sessions = InMemorySessionStore(max_age=self.settings.session_max_age)
        self.tiers = TierPolicyEngine(
            apply_overrides(
                DEFAULT_TIERS,
                max_queries=self.settings.tier_max_queries,
                prices=self.settings.tier_prices,
            )
        )
        self.upstream = AnthropicClinicalClient(
            api_key=self.settings.anthropic_api_key,
            model=self.settings.anthropic_model,
            base_url=self.settings.anthropic_base_url,
            api_version=self.settings.anthropic_api_version,
            timeout_seconds=self.settings.upstream_timeout_seconds,
        )
        self.orchestrator = ChatOrchestrator(
            store=self.sessions,
            tiers=self.tiers,
            ledger=self.ledger,
            crisis_log=self.crisis_log,
            upstream=self.upstream,
            taxonomies=self.taxonomies,
        )
        self.reaper = SessionReaper(self.sessions, interval_seconds=self.settings.reap_interval_seconds)
        logger.info(
            "alex_app_initialized",
            taxonomy_version=self.taxonomies.version,
            db_path=self.db.path,
            upstream_configured=bool(self.settings.anthropic_api_key),
        )


container = AlexApp()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    container.reaper.start()
    try:
        yield
    finally:
        container.reaper.stop()


app = FastAPI(title="Dr. Alex Clinical Assistant", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(container.settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _validated_provider_id(x_provider_id: str) -> str:
    candidate = x_provider_id.strip()
    if not _TRUSTED_PROVIDER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid X-Provider-Id")
    return candidate


def resolve_identity(
    authorization: str | None,
    x_provider_id: str | None,
    x_subscription_tier: str | None,
) -> ProviderIdentity:
    token = (authorization or "").replace("Bearer", "", 1).strip()
    if token == DEMO_TOKEN and container.settings.allow_demo:
        return ProviderIdentity(provider_id=DEMO_PROVIDER_ID, subscription_tier=DEMO_TIER, demo_mode=True)
    if x_provider_id is None or not x_provider_id.strip():
        raise HTTPException(status_code=401, detail="Missing provider identity")
    provider_id = _validated_provider_id(x_provider_id)
    tier = (x_subscription_tier or "essential").strip().lower()
    if not container.tiers.is_known(tier):
        raise HTTPException(status_code=400, detail=f"Unknown subscription tier: {tier}")
    return ProviderIdentity(provider_id=provider_id, subscription_tier=tier)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "taxonomy_version": container.taxonomies.version,
        "active_sessions": len(container.sessions),
    }


@app.post("/chat")
def chat(
    payload: ChatRequest,
    authorization: str | None = Header(default=None),
    x_provider_id: str | None = Header(default=None),
    x_subscription_tier: str | None = Header(default=None),
):
    identity = resolve_identity(authorization, x_provider_id, x_subscription_tier)
    outcome = container.orchestrator.handle(
        identity,
        payload.message,
        resolve_context(payload.context),
        session_id=str(payload.session_id) if payload.session_id else None,
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@app.get("/stats")
def stats(
    authorization: str | None = Header(default=None),
    x_provider_id: str | None = Header(default=None),
    x_subscription_tier: str | None = Header(default=None),
):
    identity = resolve_identity(authorization, x_provider_id, x_subscription_tier)
    try:
        return container.orchestrator.stats(identity)
    except Exception as exc:
        logger.exception("stats_failed", provider_id=identity.provider_id)
        raise HTTPException(status_code=500, detail="Unable to fetch AI statistics") from exc


def _require_session(session_id: str, identity: ProviderIdentity):
    session = container.sessions.get_for_provider(session_id, identity.provider_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@app.get("/sessions/{session_id}/analytics")
def get_session_analytics(
    session_id: str,
    authorization: str | None = Header(default=None),
    x_provider_id: str | None = Header(default=None),
    x_subscription_tier: str | None = Header(default=None),
):
    identity = resolve_identity(authorization, x_provider_id, x_subscription_tier)
    return session_analytics(_require_session(session_id, identity))


@app.get("/sessions/{session_id}/summary")
def get_session_summary(
    session_id: str,
    authorization: str | None = Header(default=None),
    x_provider_id: str | None = Header(default=None),
    x_subscription_tier: str | None = Header(default=None),
):
    identity = resolve_identity(authorization, x_provider_id, x_subscription_tier)
    return clinical_summary(_require_session(session_id, identity))
