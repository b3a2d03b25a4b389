"""Escalation checklists for crisis turns.

Severity here is a coarse three-level scan with its own keyword list. It is
computed independently of the classifier's urgency level, so a turn can be
``urgency_level == "crisis"`` while the protocol resolves to ``moderate`` or
``low``. Callers must not treat the two scales as interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .taxonomy import Taxonomies, default_taxonomies

CRISIS_LEVELS = ("low", "moderate", "severe")


@dataclass(frozen=True)
class EmergencyContact:
    type: str
    number: str

    def as_dict(self) -> dict[str, str]:
        return {"type": self.type, "number": self.number}


@dataclass(frozen=True)
class EmergencyProtocol:
    severity: str
    immediate_actions: tuple[str, ...]
    emergency_contacts: tuple[EmergencyContact, ...]

    def actions_text(self) -> str:
        return "\n".join(f"{index}. {action}" for index, action in enumerate(self.immediate_actions, start=1))

    def as_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity,
            "immediate_actions": list(self.immediate_actions),
            "emergency_contacts": [contact.as_dict() for contact in self.emergency_contacts],
        }


_PROTOCOLS = {
    "severe": EmergencyProtocol(
        severity="severe",
        immediate_actions=(
            "Contact patient immediately",
            "Assess immediate safety",
            "Consider emergency services",
            "Document all interactions",
            "Follow up within 2 hours",
        ),
        emergency_contacts=(
            EmergencyContact("National Suicide Prevention Lifeline", "988"),
            EmergencyContact("Crisis Text Line", "Text HOME to 741741"),
            EmergencyContact("Emergency Services", "911"),
        ),
    ),
    "moderate": EmergencyProtocol(
        severity="moderate",
        immediate_actions=(
            "Schedule urgent consultation",
            "Review treatment plan",
            "Increase monitoring frequency",
            "Contact support network",
            "Document risk assessment",
        ),
        emergency_contacts=(
            EmergencyContact("Practice Emergency Line", "Your practice number"),
            EmergencyContact("Mental Health Crisis Line", "1-800-273-8255"),
        ),
    ),
    "low": EmergencyProtocol(
        severity="low",
        immediate_actions=(
            "Schedule follow-up within 48 hours",
            "Review symptoms",
            "Assess support systems",
            "Consider care plan adjustments",
        ),
        emergency_contacts=(),
    ),
}


class EmergencyProtocolGenerator:
    def __init__(self, taxonomies: Taxonomies | None = None) -> None:
        self.taxonomies = taxonomies or default_taxonomies()

    def detect_crisis_level(self, message: str) -> str:
        text = (message or "").lower()
        # protocol_severity is ordered most severe first; anything unmatched is low.
        for level, keywords in self.taxonomies.protocol_severity:
            if any(keyword in text for keyword in keywords):
                return level
        return "low"

    def generate(self, message: str) -> EmergencyProtocol:
        return _PROTOCOLS.get(self.detect_crisis_level(message), _PROTOCOLS["low"])
