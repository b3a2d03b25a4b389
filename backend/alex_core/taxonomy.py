"""Keyword taxonomies driving the classifier and the emergency protocol.

Taxonomies are plain data loaded from a versioned JSON file so they can be
revised without touching the matching code. Ordered groups are stored as
``[name, keywords]`` pairs: their order is the priority order used by the
classifier and must not be inferred from mapping iteration.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

DEFAULT_TAXONOMY_PATH = Path(__file__).resolve().parent / "taxonomies.json"

KeywordGroups = tuple[tuple[str, tuple[str, ...]], ...]


class TaxonomyError(Exception):
    pass


@dataclass(frozen=True)
class MenopauseStages:
    perimenopause: tuple[str, ...]
    postmenopause: tuple[str, ...]
    menopause: tuple[str, ...]
    menopause_exclusion: str


@dataclass(frozen=True)
class Taxonomies:
    version: str
    crisis_keywords: tuple[str, ...]
    emergency_indicators: tuple[str, ...]
    urgent_symptoms: tuple[str, ...]
    menopause_keywords: tuple[str, ...]
    menopause_stages: MenopauseStages
    sales_keywords: tuple[str, ...]
    organization_types: KeywordGroups
    specialties: KeywordGroups
    sales_stages: KeywordGroups
    key_interests: tuple[str, ...]
    competitors: tuple[str, ...]
    evidence_markers: tuple[str, ...]
    protocol_severity: KeywordGroups
    response_crisis_markers: tuple[str, ...] = ()


def _keywords(raw: dict[str, Any], key: str) -> tuple[str, ...]:
    values = raw.get(key)
    if not isinstance(values, list) or not values:
        raise TaxonomyError(f"Taxonomy '{key}' must be a non-empty list.")
    cleaned = tuple(str(value).strip().lower() for value in values if str(value).strip())
    if not cleaned:
        raise TaxonomyError(f"Taxonomy '{key}' has no usable keywords.")
    return cleaned


def _groups(raw: dict[str, Any], key: str) -> KeywordGroups:
    values = raw.get(key)
    if not isinstance(values, list) or not values:
        raise TaxonomyError(f"Taxonomy '{key}' must be a non-empty list of [name, keywords] pairs.")
    groups: list[tuple[str, tuple[str, ...]]] = []
    seen: set[str] = set()
    for entry in values:
        if not isinstance(entry, list) or len(entry) != 2 or not isinstance(entry[1], list):
            raise TaxonomyError(f"Taxonomy '{key}' has a malformed group: {entry!r}")
        name = str(entry[0]).strip()
        if not name or name in seen:
            raise TaxonomyError(f"Taxonomy '{key}' has an empty or duplicate group name: {name!r}")
        seen.add(name)
        groups.append((name, _keywords({"keywords": entry[1]}, "keywords")))
    return tuple(groups)


def _menopause_stages(raw: dict[str, Any]) -> MenopauseStages:
    stages = raw.get("menopause_stages")
    if not isinstance(stages, dict):
        raise TaxonomyError("Taxonomy 'menopause_stages' must be an object.")
    return MenopauseStages(
        perimenopause=_keywords(stages, "perimenopause"),
        postmenopause=_keywords(stages, "postmenopause"),
        menopause=_keywords(stages, "menopause"),
        menopause_exclusion=str(stages.get("menopause_exclusion") or "peri").lower(),
    )


def parse_taxonomies(raw: dict[str, Any]) -> Taxonomies:
    version = str(raw.get("version") or "").strip()
    if not version:
        raise TaxonomyError("Taxonomy file is missing a version.")
    return Taxonomies(
        version=version,
        crisis_keywords=_keywords(raw, "crisis_keywords"),
        emergency_indicators=_keywords(raw, "emergency_indicators"),
        urgent_symptoms=_keywords(raw, "urgent_symptoms"),
        menopause_keywords=_keywords(raw, "menopause_keywords"),
        menopause_stages=_menopause_stages(raw),
        sales_keywords=_keywords(raw, "sales_keywords"),
        organization_types=_groups(raw, "organization_types"),
        specialties=_groups(raw, "specialties"),
        sales_stages=_groups(raw, "sales_stages"),
        key_interests=_keywords(raw, "key_interests"),
        competitors=_keywords(raw, "competitors"),
        evidence_markers=_keywords(raw, "evidence_markers"),
        protocol_severity=_groups(raw, "protocol_severity"),
        response_crisis_markers=(
            _keywords(raw, "response_crisis_markers") if "response_crisis_markers" in raw else ()
        ),
    )


def load_taxonomies(path: str | Path | None = None) -> Taxonomies:
    source = Path(path) if path else DEFAULT_TAXONOMY_PATH
    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise TaxonomyError(f"Unable to read taxonomy file {source}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise TaxonomyError(f"Taxonomy file {source} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise TaxonomyError(f"Taxonomy file {source} must contain a JSON object.")
    return parse_taxonomies(raw)


@lru_cache(maxsize=1)
def default_taxonomies() -> Taxonomies:
    return load_taxonomies(DEFAULT_TAXONOMY_PATH)
