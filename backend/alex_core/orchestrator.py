"""Per-request chat pipeline.

    QuotaCheck -> [Rejected | Classify] -> [CrisisPath | NormalPath]
        -> UpdateSession -> LogUsage -> Respond

Quota and feature-gate rejections never reach the upstream call. Upstream
failures fall back to a fixed message and are not counted against the quota.
Crisis-log and usage-ledger writes are best effort. A session id owned by
another provider is reported as not found.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import structlog

from .classifier import Classification, classify, detect_response_crisis_terms
from .emergency import EmergencyProtocol, EmergencyProtocolGenerator
from .models import ProviderIdentity, RequestContext, Session, StructuredContext
from .prompts import build_prompt_context
from .session_store import SessionOwnershipError, SessionStore
from .session_updater import SessionContextUpdater
from .taxonomy import Taxonomies, default_taxonomies
from .tiers import TierPolicyEngine
from .upstream import UpstreamAI

logger = structlog.get_logger(__name__)

FALLBACK_MESSAGE = (
    "I'm experiencing technical difficulties. Please try again in a moment. "
    "For urgent matters, contact your supervisor or emergency services."
)
CRISIS_SUGGESTIONS = (
    "Contact patient immediately",
    "Activate crisis intervention team",
    "Document emergency response",
)
MAX_SUGGESTIONS = 3
# Demo identities share one provider id and never touch the usage ledger.
DEMO_MONTHLY_USAGE = 15

_SUGGESTION_LINE_RE = re.compile(r"^\s*(?:\d+[.)]|[-•*])\s+(.*\S)\s*$")


class UsageLedger(Protocol):
    def get_monthly_count(self, provider_id: str) -> int: ...

    def increment(self, provider_id: str, **details: Any) -> Any: ...


class CrisisEventLog(Protocol):
    def record(self, provider_id: str, message: str, protocol: EmergencyProtocol, **details: Any) -> Any: ...


@dataclass
class ChatOutcome:
    status_code: int
    body: dict[str, Any]
    session: Session | None = None
    classification: Classification | None = None
    upstream_ok: bool = False

    @property
    def rejected(self) -> bool:
        return self.status_code >= 400


@dataclass
class _TurnResult:
    text: str
    response_type: str
    suggestions: list[str] = field(default_factory=list)
    protocol: EmergencyProtocol | None = None


def extract_suggestions(text: str, limit: int = MAX_SUGGESTIONS) -> list[str]:
    suggestions: list[str] = []
    for line in (text or "").splitlines():
        match = _SUGGESTION_LINE_RE.match(line)
        if match:
            suggestions.append(match.group(1).strip())
        if len(suggestions) >= limit:
            break
    return suggestions


class ChatOrchestrator:
    def __init__(
        self,
        *,
        store: SessionStore,
        tiers: TierPolicyEngine,
        ledger: UsageLedger,
        crisis_log: CrisisEventLog,
        upstream: UpstreamAI,
        taxonomies: Taxonomies | None = None,
        updater: SessionContextUpdater | None = None,
        emergency: EmergencyProtocolGenerator | None = None,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.taxonomies = taxonomies or default_taxonomies()
        self.store = store
        self.tiers = tiers
        self.ledger = ledger
        self.crisis_log = crisis_log
        self.upstream = upstream
        self.updater = updater or SessionContextUpdater(self.taxonomies)
        self.emergency = emergency or EmergencyProtocolGenerator(self.taxonomies)
        self._timer = timer

    def handle(
        self,
        identity: ProviderIdentity,
        message: str,
        context: RequestContext | None = None,
        *,
        session_id: str | None = None,
        request_id: str | None = None,
    ) -> ChatOutcome:
        context = context or StructuredContext({})
        request_id = request_id or uuid.uuid4().hex
        tier = self.tiers.definition(identity.subscription_tier).name
        log = logger.bind(provider_id=identity.provider_id, tier=tier, request_id=request_id)

        try:
            monthly_usage = self._monthly_usage(identity)
        except Exception:
            log.exception("usage_lookup_failed")
            return ChatOutcome(
                status_code=503,
                body={
                    "error": "Usage quota temporarily unavailable",
                    "upgrade_message": "Please retry shortly. For urgent matters, contact emergency services.",
                },
            )

        quota = self.tiers.check_quota(tier, monthly_usage)
        if not quota.allowed:
            log.info("quota_rejected", limit=quota.limit, current_usage=quota.current_usage)
            return ChatOutcome(
                status_code=429,
                body={
                    "error": "Monthly AI query limit exceeded",
                    "limit": quota.limit,
                    "current_usage": quota.current_usage,
                    "upgrade_message": self.tiers.upgrade_message(tier),
                },
            )

        feature = context.requested_feature
        if feature and not self.tiers.gate(tier, feature):
            log.info("feature_gated", feature=feature)
            return ChatOutcome(
                status_code=403,
                body={"error": "Feature not available in current tier", **self.tiers.upgrade_prompt(feature)},
            )

        demo = identity.demo_mode or context.demo_mode
        try:
            session = self.store.get_or_create(
                session_id,
                role="demo" if demo else "clinical",
                provider_id=identity.provider_id,
            )
        except SessionOwnershipError:
            log.warning("session_ownership_mismatch", session_id=session_id)
            return ChatOutcome(status_code=404, body={"error": "Session not found"})
        classification = classify(message, self.taxonomies)
        log = log.bind(session_id=session.session_id, urgency_level=classification.urgency_level)

        protocol = None
        if classification.requires_immediate_attention:
            protocol = self.emergency.generate(message)
            self._record_crisis_event(identity, session, message, protocol, log)

        prompt_context = build_prompt_context(
            session=session,
            classification=classification,
            context=context,
            tier_engine=self.tiers,
            tier=tier,
        )
        if protocol is not None:
            prompt_context["emergency_protocol"] = protocol.as_dict()

        started = self._timer()
        upstream_ok = True
        try:
            ai_text = self.upstream.complete(message, prompt_context)
        except Exception as exc:
            upstream_ok = False
            ai_text = FALLBACK_MESSAGE
            log.warning("upstream_failed", error=str(exc), error_type=type(exc).__name__)
        elapsed_ms = (self._timer() - started) * 1000.0

        turn = self._shape_turn(session, classification, ai_text, protocol, upstream_ok)

        self.updater.update(
            session,
            message,
            turn.text,
            classification=classification,
            response_time_ms=elapsed_ms if upstream_ok else None,
        )
        self.store.put(session)

        counted = upstream_ok and not identity.demo_mode
        if counted:
            self._log_usage(identity, tier, message, turn.response_type, request_id, log)

        queries_remaining = quota.remaining - 1 if counted else quota.remaining
        body: dict[str, Any] = {
            "response": turn.text,
            "type": turn.response_type,
            "suggestions": turn.suggestions[:MAX_SUGGESTIONS],
            "data_visualizations": [],
            "tier_info": self.tiers.tier_info(tier, queries_remaining),
            "session_id": session.session_id,
        }
        if turn.protocol is not None:
            body["emergency_protocol"] = turn.protocol.as_dict()
        # Annotation only; the response type is decided by the inbound message.
        response_flags = detect_response_crisis_terms(ai_text, self.taxonomies) if upstream_ok else ()
        body["response_crisis_flags"] = list(response_flags)
        if response_flags:
            log.warning("response_crisis_terms", terms=list(response_flags))
        log.info("chat_turn_completed", response_type=turn.response_type, upstream_ok=upstream_ok, role=session.role)
        return ChatOutcome(
            status_code=200,
            body=body,
            session=session,
            classification=classification,
            upstream_ok=upstream_ok,
        )

    def stats(self, identity: ProviderIdentity) -> dict[str, Any]:
        tier = self.tiers.definition(identity.subscription_tier).name
        quota = self.tiers.check_quota(tier, self._monthly_usage(identity))
        return {
            "current_tier": tier,
            "monthly_usage": quota.current_usage,
            "monthly_limit": quota.limit,
            "queries_remaining": quota.remaining,
            "features_available": sorted(self.tiers.definition(tier).features),
            "upgrade_benefits": self.tiers.upgrade_suggestion(tier).as_dict(),
        }

    def _monthly_usage(self, identity: ProviderIdentity) -> int:
        if identity.demo_mode:
            return DEMO_MONTHLY_USAGE
        return int(self.ledger.get_monthly_count(identity.provider_id))

    def _shape_turn(
        self,
        session: Session,
        classification: Classification,
        ai_text: str,
        protocol: EmergencyProtocol | None,
        upstream_ok: bool,
    ) -> _TurnResult:
        if protocol is not None:
            response_type = "crisis_alert" if classification.crisis_detected else "emergency_assistance"
            text = f"EMERGENCY PROTOCOL ACTIVATED\n\n{protocol.actions_text()}\n\n{ai_text}"
            return _TurnResult(text, response_type, list(CRISIS_SUGGESTIONS), protocol)
        if not upstream_ok:
            return _TurnResult(ai_text, "error")
        sales_mode = session.role == "sales" or classification.sales_intent
        response_type = "sales_consultation" if sales_mode else "clinical_assistance"
        return _TurnResult(ai_text, response_type, extract_suggestions(ai_text))

    def _record_crisis_event(
        self,
        identity: ProviderIdentity,
        session: Session,
        message: str,
        protocol: EmergencyProtocol,
        log: Any,
    ) -> None:
        log.warning("crisis_protocol_triggered", severity=protocol.severity)
        try:
            self.crisis_log.record(identity.provider_id, message, protocol, session_key=session.session_id)
        except Exception:
            log.exception("crisis_event_log_failed")

    def _log_usage(
        self,
        identity: ProviderIdentity,
        tier: str,
        message: str,
        response_type: str,
        request_id: str,
        log: Any,
    ) -> None:
        try:
            self.ledger.increment(
                identity.provider_id,
                request_id=request_id,
                tier=tier,
                query_length=len(message),
                response_type=response_type,
            )
        except Exception:
            log.exception("usage_log_failed")
