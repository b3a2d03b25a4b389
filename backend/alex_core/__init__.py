from .classifier import Classification, classify
from .emergency import EmergencyProtocol, EmergencyProtocolGenerator
from .models import (
    FreeformContext,
    ProviderIdentity,
    RequestContext,
    Session,
    StructuredContext,
    resolve_context,
)
from .orchestrator import ChatOrchestrator, ChatOutcome
from .session_store import InMemorySessionStore, SessionReaper, SessionStore
from .session_updater import SessionContextUpdater
from .taxonomy import Taxonomies, TaxonomyError, load_taxonomies
from .tiers import QuotaDecision, TierDefinition, TierPolicyEngine, UnknownTierError, UpgradeSuggestion
from .upstream import AnthropicClinicalClient, UpstreamAI, UpstreamError

__all__ = [
    "AnthropicClinicalClient",
    "ChatOrchestrator",
    "ChatOutcome",
    "Classification",
    "EmergencyProtocol",
    "EmergencyProtocolGenerator",
    "FreeformContext",
    "InMemorySessionStore",
    "ProviderIdentity",
    "QuotaDecision",
    "RequestContext",
    "Session",
    "SessionContextUpdater",
    "SessionReaper",
    "SessionStore",
    "StructuredContext",
    "Taxonomies",
    "TaxonomyError",
    "TierDefinition",
    "TierPolicyEngine",
    "UnknownTierError",
    "UpgradeSuggestion",
    "UpstreamAI",
    "UpstreamError",
    "classify",
    "load_taxonomies",
    "resolve_context",
]
