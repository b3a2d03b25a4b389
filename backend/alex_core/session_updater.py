from __future__ import annotations

from typing import Callable

import structlog

from .classifier import (
    Classification,
    classify,
    detect_competitors,
    detect_key_interests,
    detect_sales_stage,
    is_evidence_based_response,
)
from .models import ConversationTurn, Session
from .taxonomy import Taxonomies, default_taxonomies
from .time_utils import utc_now

logger = structlog.get_logger(__name__)


class SessionContextUpdater:
    """Folds one chat turn into a session's running state."""

    def __init__(self, taxonomies: Taxonomies | None = None, *, clock: Callable = utc_now) -> None:
        self.taxonomies = taxonomies or default_taxonomies()
        self._clock = clock

    def update(
        self,
        session: Session,
        message: str,
        response: str,
        *,
        classification: Classification | None = None,
        response_time_ms: float | None = None,
    ) -> Session:
        result = classification or classify(message, self.taxonomies)
        now = self._clock()

        session.conversation_history.append(
            ConversationTurn(
                timestamp=now,
                user_message=message,
                ai_response=response,
                role_at_time=session.role,
            )
        )

        self._apply_urgency(session, result)

        clinical = session.clinical_context
        if result.menopause.menopause_detected:
            clinical.clinical_focus.add(result.menopause.clinical_focus)
            if result.menopause.stage and result.menopause.stage != "unknown":
                clinical.menopause_stage = result.menopause.stage
        clinical.specialty_needs.update(result.specialties)

        if result.organization_matched:
            session.organization_type = result.organization_type

        if result.sales_intent and session.role != "sales":
            logger.info(
                "session_role_transition",
                session_id=session.session_id,
                from_role=session.role,
                to_role="sales",
            )
            session.role = "sales"
            session.user_type = "prospect"

        if session.role == "sales":
            self._update_sales_context(session, message)

        if is_evidence_based_response(response, self.taxonomies):
            session.quality_metrics.evidence_based_responses += 1
        if response_time_ms is not None:
            session.quality_metrics.response_times_ms.append(float(response_time_ms))

        session.last_activity = now
        return session

    def _apply_urgency(self, session: Session, result: Classification) -> None:
        if not result.requires_immediate_attention:
            return
        clinical = session.clinical_context
        clinical.urgency_level = result.urgency_level
        clinical.crisis_detected = result.crisis_detected
        clinical.emergency_indicators = list(result.matched_indicators)
        if result.crisis_detected:
            session.quality_metrics.crisis_interventions += 1
        else:
            session.quality_metrics.safety_alerts += 1

    def _update_sales_context(self, session: Session, message: str) -> None:
        sales = session.sales_context
        stage = detect_sales_stage(message, self.taxonomies)
        if stage is not None:
            sales.inquiry_stage = stage
        sales.key_interests.update(detect_key_interests(message, self.taxonomies))
        sales.competitors_discussed.update(detect_competitors(message, self.taxonomies))
