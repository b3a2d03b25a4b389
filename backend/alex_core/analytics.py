from __future__ import annotations

from typing import Any

from .models import Session
from .time_utils import to_iso, utc_now


def _duration_seconds(session: Session) -> float:
    return round((utc_now() - session.created_at).total_seconds(), 3)


def session_analytics(session: Session) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "role": session.role,
        "user_type": session.user_type,
        "organization_type": session.organization_type,
        "conversation_length": len(session.conversation_history),
        "sales_context": session.sales_context.as_dict(),
        "clinical_metrics": {
            "urgency_level": session.clinical_context.urgency_level,
            "crisis_detected": session.clinical_context.crisis_detected,
            "specialty_areas": sorted(session.clinical_context.specialty_needs),
            "clinical_focus": sorted(session.clinical_context.clinical_focus),
        },
        "quality_indicators": session.quality_metrics.as_dict(),
        "duration_seconds": _duration_seconds(session),
        "last_activity": to_iso(session.last_activity),
    }


def clinical_summary(session: Session) -> dict[str, Any]:
    turns = len(session.conversation_history)
    metrics = session.quality_metrics
    return {
        "session_id": session.session_id,
        "duration_seconds": _duration_seconds(session),
        "conversation_length": turns,
        "clinical_context": session.clinical_context.as_dict(),
        "quality_metrics": metrics.as_dict(),
        "clinical_assessment": {
            "urgency_level": session.clinical_context.urgency_level,
            "specialty_focus": sorted(session.clinical_context.specialty_needs),
            "clinical_topics": sorted(session.clinical_context.clinical_focus),
            "crisis_interventions": metrics.crisis_interventions,
            "evidence_based_ratio": round(metrics.evidence_based_responses / turns, 3) if turns else 0.0,
        },
        "recent_turns": [turn.as_dict() for turn in session.conversation_history[-5:]],
    }
