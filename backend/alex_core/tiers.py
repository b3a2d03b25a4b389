"""Subscription tier capabilities and the quota / feature policy around them."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping

ALL_FEATURES = "all_features"
UNLIMITED_QUERIES = 999_999
TIER_ORDER = ("essential", "professional", "enterprise")


class UnknownTierError(KeyError):
    pass


@dataclass(frozen=True)
class TierDefinition:
    name: str
    max_queries: int
    features: frozenset[str]
    analytics_depth: str
    price: int

    @property
    def unlimited(self) -> bool:
        return self.max_queries >= UNLIMITED_QUERIES

    def has_feature(self, feature: str) -> bool:
        return ALL_FEATURES in self.features or feature in self.features


DEFAULT_TIERS: dict[str, TierDefinition] = {
    "essential": TierDefinition(
        name="essential",
        max_queries=500,
        features=frozenset({"basic_navigation", "clinical_insights", "crisis_detection"}),
        analytics_depth="basic",
        price=2999,
    ),
    "professional": TierDefinition(
        name="professional",
        max_queries=2000,
        features=frozenset({"basic_navigation", "clinical_insights", "predictive_analytics", "ehr_integration"}),
        analytics_depth="advanced",
        price=9999,
    ),
    "enterprise": TierDefinition(
        name="enterprise",
        max_queries=UNLIMITED_QUERIES,
        features=frozenset(
            {ALL_FEATURES, "emergency_assistance", "workflow_optimization", "custom_training", "white_label"}
        ),
        analytics_depth="unlimited",
        price=19999,
    ),
}

FEATURE_DESCRIPTIONS = {
    "clinical_insights": "Advanced clinical insights provide AI-powered recommendations based on patient data patterns",
    "predictive_analytics": "Predictive analytics help identify patient risks before they become critical",
    "ehr_integration": "Full EHR integration keeps recommendations in sync with the chart",
    "emergency_assistance": "24/7 emergency assistance with crisis detection and intervention protocols",
    "workflow_optimization": "AI-powered workflow optimization reduces administrative burden by 40%",
    "custom_training": "Custom model training adapts clinical guidance to your organization",
    "white_label": "White-label deployment puts the assistant under your own brand",
}

ORGANIZATION_PRICING = {
    "solo_practice": {
        "tier": "Essential",
        "price": "$2,999/month",
        "queries": "1,000 AI queries",
        "features": "Basic EHR integration, clinical decision support",
        "roi": "$120K+ annual savings through 25% admin reduction",
    },
    "small_practice": {
        "tier": "Professional",
        "price": "$9,999/month",
        "queries": "5,000 AI queries",
        "features": "Advanced analytics, full EHR integration, predictive insights",
        "roi": "$500K+ annual savings through 40% admin reduction + risk mitigation",
    },
    "health_system": {
        "tier": "Enterprise Professional",
        "price": "$19,999/month",
        "queries": "Unlimited queries",
        "features": "Hospital-wide integration, custom training, white-label options",
        "roi": "$1.2M+ annual savings through complete workflow optimization",
    },
    "enterprise": {
        "tier": "Enterprise Unlimited",
        "price": "Custom pricing",
        "queries": "Unlimited queries",
        "features": "Multi-tenant deployment, custom development, dedicated support",
        "roi": "Scalable ROI based on organization size and complexity",
    },
}

ROI_EXAMPLES = {
    "solo_practice": (
        "At $2,999/month for 1,000 AI queries, you pay $3 per clinical decision enhancement. "
        "Compare that to specialist referral costs of $200+ per case."
    ),
    "small_practice": (
        "At $9,999/month for 5,000 AI queries, you pay $2 per clinical decision. "
        "Your current consulting costs are likely 50x that per case."
    ),
    "health_system": (
        "At $19,999/month for unlimited queries, there are no per-case costs. "
        "For health systems seeing 1,000+ cases monthly, this delivers exceptional value."
    ),
    "enterprise": (
        "Custom pricing ensures optimal value for your specific use case and scale. "
        "Unlimited queries mean predictable costs regardless of growth."
    ),
}


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int
    limit: int
    current_usage: int


@dataclass(frozen=True)
class UpgradeSuggestion:
    current_tier: str
    next_tier: str | None
    additional_queries: int = 0
    new_features: tuple[str, ...] = ()
    price_difference: int = 0

    def as_dict(self) -> dict[str, Any]:
        if self.next_tier is None:
            return {"message": "You have access to all premium features!"}
        return {
            "next_tier": self.next_tier,
            "additional_queries": self.additional_queries,
            "new_features": list(self.new_features),
            "price_difference": self.price_difference,
        }


def apply_overrides(
    tiers: Mapping[str, TierDefinition],
    *,
    max_queries: Mapping[str, int] | None = None,
    prices: Mapping[str, int] | None = None,
) -> dict[str, TierDefinition]:
    resolved = dict(tiers)
    for name, value in (max_queries or {}).items():
        if name in resolved:
            resolved[name] = replace(resolved[name], max_queries=int(value))
    for name, value in (prices or {}).items():
        if name in resolved:
            resolved[name] = replace(resolved[name], price=int(value))
    return resolved


class TierPolicyEngine:
    def __init__(
        self,
        tiers: Mapping[str, TierDefinition] | None = None,
        order: tuple[str, ...] = TIER_ORDER,
    ) -> None:
        self.tiers = dict(tiers or DEFAULT_TIERS)
        missing = [name for name in order if name not in self.tiers]
        if missing:
            raise ValueError(f"Tier order references undefined tiers: {', '.join(missing)}")
        self.order = order

    def definition(self, tier: str) -> TierDefinition:
        definition = self.tiers.get((tier or "").strip().lower())
        if definition is None:
            raise UnknownTierError(tier)
        return definition

    def is_known(self, tier: str) -> bool:
        return (tier or "").strip().lower() in self.tiers

    def check_quota(self, tier: str, monthly_usage: int) -> QuotaDecision:
        definition = self.definition(tier)
        usage = max(0, int(monthly_usage))
        return QuotaDecision(
            allowed=usage < definition.max_queries,
            remaining=max(definition.max_queries - usage, 0),
            limit=definition.max_queries,
            current_usage=usage,
        )

    def gate(self, tier: str, feature: str) -> bool:
        return self.definition(tier).has_feature(feature)

    def required_tier(self, feature: str) -> str | None:
        for name in self.order:
            if feature in self.tiers[name].features:
                return name
        # Only the all_features sentinel grants it.
        for name in self.order:
            if ALL_FEATURES in self.tiers[name].features:
                return name
        return None

    def upgrade_suggestion(self, tier: str) -> UpgradeSuggestion:
        current = self.definition(tier)
        index = self.order.index(current.name)
        if index == len(self.order) - 1:
            return UpgradeSuggestion(current_tier=current.name, next_tier=None)
        following = self.tiers[self.order[index + 1]]
        return UpgradeSuggestion(
            current_tier=current.name,
            next_tier=following.name,
            additional_queries=following.max_queries - current.max_queries,
            new_features=tuple(sorted(following.features - current.features)),
            price_difference=following.price - current.price,
        )

    def upgrade_message(self, tier: str) -> str:
        current = self.definition(tier)
        higher = [name.capitalize() for name in self.order[self.order.index(current.name) + 1 :]]
        if not higher:
            return "Contact your account manager to discuss additional capacity."
        return f"Upgrade to {' or '.join(higher)} for higher limits"

    def upgrade_prompt(self, feature: str) -> dict[str, Any]:
        required = self.required_tier(feature) or self.order[-1]
        description = FEATURE_DESCRIPTIONS.get(feature, feature.replace("_", " ").capitalize())
        return {
            "upgrade_message": f"{description} is available in {required.capitalize()} tier.",
            "feature_locked": feature,
            "required_tier": required,
            "suggestions": [f"Upgrade to {required} tier", "Schedule a demo", "View pricing details"],
        }

    def tier_info(self, tier: str, queries_remaining: int) -> dict[str, Any]:
        definition = self.definition(tier)
        return {
            "current_tier": definition.name,
            "queries_remaining": max(queries_remaining, 0),
            "features_available": sorted(definition.features),
        }

    def display_name(self, tier: str) -> str:
        return self.definition(tier).name.capitalize()

    @staticmethod
    def recommended_pricing(organization_type: str) -> dict[str, str]:
        return dict(ORGANIZATION_PRICING.get(organization_type, ORGANIZATION_PRICING["small_practice"]))

    @staticmethod
    def roi_example(organization_type: str) -> str:
        return ROI_EXAMPLES.get(organization_type, ROI_EXAMPLES["small_practice"])
