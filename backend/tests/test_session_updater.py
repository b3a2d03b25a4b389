from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from alex_core.analytics import clinical_summary, session_analytics
from alex_core.models import SESSION_ROLES, USER_TYPES, Session
from alex_core.session_updater import SessionContextUpdater

START = datetime(2024, 6, 3, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    state = {"now": START}

    def _now():
        return state["now"]

    _now.state = state
    return _now


@pytest.fixture
def updater(clock) -> SessionContextUpdater:
    return SessionContextUpdater(clock=clock)


def _session() -> Session:
    return Session(session_id="session-1", created_at=START, last_activity=START)


def test_update_appends_turn_and_refreshes_activity(updater, clock):
    session = _session()
    clock.state["now"] = START + timedelta(minutes=5)

    updater.update(session, "Dosing for levothyroxine?", "Start low and titrate.", response_time_ms=120)

    assert len(session.conversation_history) == 1
    turn = session.conversation_history[0]
    assert turn.user_message == "Dosing for levothyroxine?"
    assert turn.ai_response == "Start low and titrate."
    assert turn.role_at_time == "clinical"
    assert session.last_activity == START + timedelta(minutes=5)
    assert session.quality_metrics.response_times_ms == [120.0]


def test_crisis_turn_sets_clinical_state_and_counts_intervention(updater):
    session = _session()
    updater.update(session, "The patient said they want to die", "Call 988 now.")

    clinical = session.clinical_context
    assert clinical.urgency_level == "crisis"
    assert clinical.crisis_detected is True
    assert clinical.emergency_indicators == ["want to die"]
    assert session.quality_metrics.crisis_interventions == 1
    assert session.quality_metrics.safety_alerts == 0


def test_emergent_turn_counts_safety_alert(updater):
    session = _session()
    updater.update(session, "Patient has difficulty breathing after exercise", "Assess airway.")

    assert session.clinical_context.urgency_level == "emergent"
    assert session.clinical_context.crisis_detected is False
    assert session.quality_metrics.safety_alerts == 1
    assert session.quality_metrics.crisis_interventions == 0


def test_routine_turn_does_not_downgrade_urgency(updater):
    session = _session()
    updater.update(session, "The patient said they want to die", "Call 988 now.")
    updater.update(session, "What about follow-up scheduling?", "Book within a week.")

    assert session.clinical_context.urgency_level == "crisis"
    assert session.clinical_context.crisis_detected is True


def test_urgent_turn_leaves_urgency_unchanged(updater):
    session = _session()
    updater.update(session, "She has a severe headache and high fever", "Consider meningitis.")

    assert session.clinical_context.urgency_level == "routine"
    assert session.quality_metrics.safety_alerts == 0


def test_menopause_focus_and_stage_are_recorded(updater):
    session = _session()
    updater.update(session, "hot flashes and irregular periods", "Consider perimenopause workup.")

    clinical = session.clinical_context
    assert "menopause_management" in clinical.clinical_focus
    assert clinical.menopause_stage == "perimenopause"


def test_unknown_menopause_stage_keeps_previous_stage(updater):
    session = _session()
    updater.update(session, "postmenopause bone loss follow-up", "Order DEXA.")
    updater.update(session, "night sweats again", "Review sleep hygiene.")

    assert session.clinical_context.menopause_stage == "postmenopause"


def test_specialties_accumulate_across_turns(updater):
    session = _session()
    updater.update(session, "thyroid nodule", "Ultrasound first.")
    updater.update(session, "new skin rash", "Consider contact dermatitis.")

    assert session.clinical_context.specialty_needs == {"endocrinology", "dermatology"}


def test_organization_type_only_overwritten_on_match(updater):
    session = _session()
    updater.update(session, "We are a large hospital", "Noted.")
    assert session.organization_type == "health_system"

    updater.update(session, "Any guidance on statins?", "Use risk calculators.")
    assert session.organization_type == "health_system"


def test_sales_transition_and_sales_context(updater):
    session = _session()
    updater.update(session, "What's your pricing compared to Epic?", "Plans start at $2,500.")

    assert session.role == "sales"
    assert session.user_type == "prospect"
    assert session.role in SESSION_ROLES and session.user_type in USER_TYPES
    assert session.organization_type == "small_practice"
    assert session.sales_context.inquiry_stage == "negotiation"
    assert session.sales_context.competitors_discussed == {"epic"}


def test_sales_context_keeps_updating_after_transition(updater):
    session = _session()
    updater.update(session, "What's your pricing?", "Plans start at $2,500.")
    updater.update(session, "Could we run a pilot with security review and Cerner?", "Yes.")
    updater.update(session, "Thanks, that helps", "Happy to help.")

    sales = session.sales_context
    assert session.role == "sales"
    assert sales.inquiry_stage == "trial"
    assert sales.key_interests == {"security"}
    assert sales.competitors_discussed == {"cerner"}
    assert session.conversation_history[-1].role_at_time == "sales"


def test_clinical_turn_never_touches_sales_context(updater):
    session = _session()
    updater.update(session, "Compare with Epic order sets for thyroid", "Use guideline panels.")

    assert session.role == "clinical"
    assert session.sales_context.competitors_discussed == set()


def test_evidence_based_response_is_counted(updater):
    session = _session()
    updater.update(session, "HRT and breast cancer risk?", "Evidence shows a small absolute increase.")
    updater.update(session, "Any lifestyle tips?", "Regular exercise helps.")

    assert session.quality_metrics.evidence_based_responses == 1


def test_analytics_and_summary_reflect_session(updater):
    session = _session()
    updater.update(session, "hot flashes and irregular periods", "Studies indicate HRT helps.", response_time_ms=100)
    updater.update(session, "What's your pricing?", "Plans vary.", response_time_ms=300)

    analytics = session_analytics(session)
    assert analytics["session_id"] == "session-1"
    assert analytics["role"] == "sales"
    assert analytics["conversation_length"] == 2
    assert analytics["sales_context"]["inquiry_stage"] == "negotiation"
    assert analytics["quality_indicators"]["average_response_time_ms"] == 200.0

    summary = clinical_summary(session)
    assert summary["clinical_context"]["menopause_stage"] == "perimenopause"
    assert summary["clinical_assessment"]["evidence_based_ratio"] == 0.5
    assert [turn["role_at_time"] for turn in summary["recent_turns"]] == ["clinical", "clinical"]


def test_repeated_tags_are_not_duplicated(updater):
    session = _session()
    for _ in range(3):
        updater.update(session, "thyroid labs and hot flashes", "Check TSH.")

    assert session.clinical_context.specialty_needs == {"endocrinology"}
    assert session.clinical_context.clinical_focus == {"menopause_management"}
    assert len(session.conversation_history) == 3
