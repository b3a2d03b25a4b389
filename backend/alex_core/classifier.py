from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from .taxonomy import KeywordGroups, Taxonomies, default_taxonomies

URGENCY_LEVELS = ("routine", "urgent", "emergent", "crisis")
ORGANIZATION_TYPES = ("solo_practice", "small_practice", "health_system", "enterprise")
DEFAULT_ORGANIZATION_TYPE = "small_practice"
MENOPAUSE_FOCUS = "menopause_management"


@dataclass(frozen=True)
class EmergencyAssessment:
    crisis_detected: bool
    emergency_detected: bool
    urgency_level: str
    matched_indicators: tuple[str, ...] = ()

    @property
    def requires_immediate_attention(self) -> bool:
        return self.crisis_detected or self.emergency_detected


@dataclass(frozen=True)
class MenopauseContext:
    menopause_detected: bool
    stage: str | None = None
    symptoms: tuple[str, ...] = ()
    clinical_focus: str | None = None


@dataclass(frozen=True)
class Classification:
    emergency: EmergencyAssessment
    sales_intent: bool
    organization_type: str
    organization_matched: bool
    specialties: tuple[str, ...] = ()
    menopause: MenopauseContext = field(default_factory=lambda: MenopauseContext(menopause_detected=False))

    @property
    def crisis_detected(self) -> bool:
        return self.emergency.crisis_detected

    @property
    def emergency_detected(self) -> bool:
        return self.emergency.emergency_detected

    @property
    def urgency_level(self) -> str:
        return self.emergency.urgency_level

    @property
    def matched_indicators(self) -> tuple[str, ...]:
        return self.emergency.matched_indicators

    @property
    def requires_immediate_attention(self) -> bool:
        return self.emergency.requires_immediate_attention

    def as_dict(self) -> dict[str, Any]:
        return {
            "crisis_detected": self.crisis_detected,
            "emergency_detected": self.emergency_detected,
            "urgency_level": self.urgency_level,
            "matched_indicators": list(self.matched_indicators),
            "requires_immediate_attention": self.requires_immediate_attention,
            "sales_intent": self.sales_intent,
            "organization_type": self.organization_type,
            "specialties": list(self.specialties),
            "menopause_detected": self.menopause.menopause_detected,
            "menopause_stage": self.menopause.stage,
        }


def _matches(text: str, keywords: Iterable[str]) -> tuple[str, ...]:
    return tuple(keyword for keyword in keywords if keyword in text)


def _first_group(text: str, groups: KeywordGroups) -> str | None:
    for name, keywords in groups:
        if _matches(text, keywords):
            return name
    return None


def _last_group(text: str, groups: KeywordGroups) -> str | None:
    winner = None
    for name, keywords in groups:
        if _matches(text, keywords):
            winner = name
    return winner


def detect_clinical_emergency(message: str, taxonomies: Taxonomies | None = None) -> EmergencyAssessment:
    tax = taxonomies or default_taxonomies()
    text = (message or "").lower()
    crisis = _matches(text, tax.crisis_keywords)
    emergency = _matches(text, tax.emergency_indicators)
    if crisis:
        return EmergencyAssessment(True, bool(emergency), "crisis", crisis)
    if emergency:
        return EmergencyAssessment(False, True, "emergent", emergency)
    urgent = _matches(text, tax.urgent_symptoms)
    if urgent:
        return EmergencyAssessment(False, False, "urgent", urgent)
    return EmergencyAssessment(False, False, "routine")


def detect_sales_intent(message: str, taxonomies: Taxonomies | None = None) -> bool:
    tax = taxonomies or default_taxonomies()
    return bool(_matches((message or "").lower(), tax.sales_keywords))


def detect_organization_type(message: str, taxonomies: Taxonomies | None = None) -> tuple[str, bool]:
    """Return ``(organization_type, matched)``; the first group in priority order wins."""

    tax = taxonomies or default_taxonomies()
    found = _first_group((message or "").lower(), tax.organization_types)
    if found is None:
        return DEFAULT_ORGANIZATION_TYPE, False
    return found, True


def detect_specialty_focus(message: str, taxonomies: Taxonomies | None = None) -> tuple[str, ...]:
    tax = taxonomies or default_taxonomies()
    text = (message or "").lower()
    return tuple(name for name, keywords in tax.specialties if _matches(text, keywords))


def detect_menopause_context(message: str, taxonomies: Taxonomies | None = None) -> MenopauseContext:
    tax = taxonomies or default_taxonomies()
    text = (message or "").lower()
    symptoms = _matches(text, tax.menopause_keywords)
    if not symptoms:
        return MenopauseContext(menopause_detected=False)

    stages = tax.menopause_stages
    stage = "unknown"
    if _matches(text, stages.perimenopause):
        stage = "perimenopause"
    elif _matches(text, stages.postmenopause):
        stage = "postmenopause"
    elif _matches(text, stages.menopause) and stages.menopause_exclusion not in text:
        stage = "menopause"
    return MenopauseContext(
        menopause_detected=True,
        stage=stage,
        symptoms=symptoms,
        clinical_focus=MENOPAUSE_FOCUS,
    )


def detect_sales_stage(message: str, taxonomies: Taxonomies | None = None) -> str | None:
    """Scan the stage check list in order; the last matching stage wins for this turn."""

    tax = taxonomies or default_taxonomies()
    return _last_group((message or "").lower(), tax.sales_stages)


def detect_key_interests(message: str, taxonomies: Taxonomies | None = None) -> tuple[str, ...]:
    tax = taxonomies or default_taxonomies()
    return _matches((message or "").lower(), tax.key_interests)


def detect_competitors(message: str, taxonomies: Taxonomies | None = None) -> tuple[str, ...]:
    tax = taxonomies or default_taxonomies()
    return _matches((message or "").lower(), tax.competitors)


def is_evidence_based_response(response: str, taxonomies: Taxonomies | None = None) -> bool:
    tax = taxonomies or default_taxonomies()
    return bool(_matches((response or "").lower(), tax.evidence_markers))


def detect_response_crisis_terms(response: str, taxonomies: Taxonomies | None = None) -> tuple[str, ...]:
    tax = taxonomies or default_taxonomies()
    return _matches((response or "").lower(), tax.response_crisis_markers)


def classify(message: str, taxonomies: Taxonomies | None = None) -> Classification:
    tax = taxonomies or default_taxonomies()
    organization_type, organization_matched = detect_organization_type(message, tax)
    return Classification(
        emergency=detect_clinical_emergency(message, tax),
        sales_intent=detect_sales_intent(message, tax),
        organization_type=organization_type,
        organization_matched=organization_matched,
        specialties=detect_specialty_focus(message, tax),
        menopause=detect_menopause_context(message, tax),
    )
