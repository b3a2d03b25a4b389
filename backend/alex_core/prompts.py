from __future__ import annotations

import json
from typing import Any

from .classifier import Classification
from .models import RequestContext, Session
from .tiers import TierPolicyEngine

CLINICAL_SYSTEM_PROMPT = (
    "You are Dr. Alex AI, a clinical intelligence assistant supporting healthcare providers. "
    "Give evidence-based, professional and concise clinical decision support. "
    "Maintain patient confidentiality, mark uncertainty clearly, and never claim a confirmed diagnosis. "
    "When crisis indicators are present, put patient safety first: recommend immediate provider "
    "notification and emergency services (988, 911) where indicated."
)

SALES_SYSTEM_ADDENDUM = (
    "The user appears to be evaluating the platform as a business solution. Acknowledge the shift from "
    "clinical assistance, stay professional and value-focused, tailor recommendations to the detected "
    "organization type, and offer a clinical demonstration. Keep clinical statements accurate."
)


def build_prompt_context(
    *,
    session: Session,
    classification: Classification,
    context: RequestContext,
    tier_engine: TierPolicyEngine,
    tier: str,
) -> dict[str, Any]:
    sales_mode = session.role == "sales" or classification.sales_intent
    organization_type = (
        classification.organization_type if classification.organization_matched else session.organization_type
    )
    snapshot: dict[str, Any] = {
        "provider_tier": tier_engine.display_name(tier),
        "urgency_level": classification.urgency_level,
        "crisis_detected": classification.crisis_detected,
        "matched_indicators": list(classification.matched_indicators),
        "specialties": sorted(set(classification.specialties) | session.clinical_context.specialty_needs),
        "menopause_stage": classification.menopause.stage,
        "session_turns": len(session.conversation_history),
    }
    if sales_mode:
        snapshot["sales"] = {
            "organization_type": organization_type,
            "inquiry_stage": session.sales_context.inquiry_stage,
            "recommended_pricing": tier_engine.recommended_pricing(organization_type),
            "roi_example": tier_engine.roi_example(organization_type),
        }
    hint = context.prompt_hint()
    if hint:
        snapshot["page_context"] = hint[:200]
    return snapshot


def render_system_prompt(prompt_context: dict[str, Any]) -> str:
    parts = [CLINICAL_SYSTEM_PROMPT]
    if "sales" in prompt_context:
        parts.append(SALES_SYSTEM_ADDENDUM)
    parts.append(
        "Session context JSON (use this for continuity and triage):\n"
        + json.dumps(prompt_context, ensure_ascii=True, sort_keys=True)
    )
    return "\n\n".join(parts)
