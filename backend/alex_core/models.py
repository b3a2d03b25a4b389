from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .classifier import DEFAULT_ORGANIZATION_TYPE
from .time_utils import to_iso, utc_now

SESSION_ROLES = {"clinical", "sales", "demo"}
USER_TYPES = {"provider", "prospect", "patient", "admin"}
INQUIRY_STAGES = ("initial", "evaluation", "demo", "trial", "negotiation")


def new_session_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ConversationTurn:
    timestamp: datetime
    user_message: str
    ai_response: str
    role_at_time: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": to_iso(self.timestamp),
            "user_message": self.user_message,
            "ai_response": self.ai_response,
            "role_at_time": self.role_at_time,
        }


@dataclass
class ClinicalContext:
    urgency_level: str = "routine"
    specialty_needs: set[str] = field(default_factory=set)
    clinical_focus: set[str] = field(default_factory=set)
    crisis_detected: bool = False
    emergency_indicators: list[str] = field(default_factory=list)
    menopause_stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "urgency_level": self.urgency_level,
            "specialty_needs": sorted(self.specialty_needs),
            "clinical_focus": sorted(self.clinical_focus),
            "crisis_detected": self.crisis_detected,
            "emergency_indicators": list(self.emergency_indicators),
            "menopause_stage": self.menopause_stage,
        }


@dataclass
class SalesContext:
    inquiry_stage: str = "initial"
    key_interests: set[str] = field(default_factory=set)
    competitors_discussed: set[str] = field(default_factory=set)

    def as_dict(self) -> dict[str, Any]:
        return {
            "inquiry_stage": self.inquiry_stage,
            "key_interests": sorted(self.key_interests),
            "competitors_discussed": sorted(self.competitors_discussed),
        }


@dataclass
class QualityMetrics:
    evidence_based_responses: int = 0
    crisis_interventions: int = 0
    safety_alerts: int = 0
    response_times_ms: list[float] = field(default_factory=list)

    @property
    def average_response_time_ms(self) -> float:
        if not self.response_times_ms:
            return 0.0
        return sum(self.response_times_ms) / len(self.response_times_ms)

    def as_dict(self) -> dict[str, Any]:
        return {
            "evidence_based_responses": self.evidence_based_responses,
            "crisis_interventions": self.crisis_interventions,
            "safety_alerts": self.safety_alerts,
            "average_response_time_ms": round(self.average_response_time_ms, 2),
        }


@dataclass
class Session:
    session_id: str
    provider_id: str | None = None
    role: str = "clinical"
    user_type: str = "provider"
    organization_type: str = DEFAULT_ORGANIZATION_TYPE
    clinical_context: ClinicalContext = field(default_factory=ClinicalContext)
    sales_context: SalesContext = field(default_factory=SalesContext)
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    quality_metrics: QualityMetrics = field(default_factory=QualityMetrics)
    created_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class StructuredContext:
    data: dict[str, Any]

    @property
    def demo_mode(self) -> bool:
        return bool(self.data.get("demo_mode"))

    @property
    def requested_feature(self) -> str | None:
        feature = self.data.get("feature")
        if isinstance(feature, str) and feature.strip():
            return feature.strip()
        return None

    def prompt_hint(self) -> str | None:
        hint = self.data.get("type") or self.data.get("page")
        return str(hint) if hint else None


@dataclass(frozen=True)
class FreeformContext:
    text: str

    @property
    def demo_mode(self) -> bool:
        return False

    @property
    def requested_feature(self) -> str | None:
        return None

    def prompt_hint(self) -> str | None:
        return self.text or None


RequestContext = StructuredContext | FreeformContext


def resolve_context(raw: Any) -> RequestContext:
    if raw is None:
        return StructuredContext({})
    if isinstance(raw, str):
        return FreeformContext(raw.strip())
    if isinstance(raw, dict):
        return StructuredContext(dict(raw))
    raise TypeError(f"Unsupported context type: {type(raw).__name__}")


@dataclass(frozen=True)
class ProviderIdentity:
    provider_id: str
    subscription_tier: str
    demo_mode: bool = False
