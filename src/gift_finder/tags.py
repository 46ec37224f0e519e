"""Maps free-text recipient attributes onto the catalog's tag vocabulary."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from gift_finder.llm_utils import CompletionClient, extract_json_object

_LOGGER = logging.getLogger(__name__)

AGE_TAGS = ("children", "teenagers", "young adults", "adults", "seniors")
GENDER_TAGS = ("male", "female", "unisex")
INTEREST_TAGS = (
    "reading",
    "music",
    "sports",
    "fitness",
    "travel",
    "cooking",
    "technology",
    "gaming",
    "art",
    "photography",
    "gardening",
    "fashion",
    "movies",
    "outdoors",
    "crafts",
    "pets",
    "beauty",
    "home",
)
PROFESSION_TAGS = (
    "programmer",
    "engineer",
    "teacher",
    "doctor",
    "designer",
    "manager",
    "artist",
    "student",
    "chef",
    "lawyer",
    "office worker",
    "entrepreneur",
)
OCCASION_TAGS = (
    "birthday",
    "anniversary",
    "wedding",
    "christmas",
    "new year",
    "valentines day",
    "graduation",
    "housewarming",
    "any",
)

VOCABULARY: dict[str, tuple[str, ...]] = {
    "age": AGE_TAGS,
    "gender": GENDER_TAGS,
    "interest": INTEREST_TAGS,
    "profession": PROFESSION_TAGS,
    "occasion": OCCASION_TAGS,
}


@dataclass
class RecipientCriteria:
    age: int | None = None
    gender: str = "unspecified"
    interests: str = ""
    profession: str = ""
    occasion: str = "any"
    budget: str = "any"

    def describe(self) -> str:
        parts = []
        if self.age is not None:
            parts.append(f"Age: {self.age}")
        if self.gender in {"male", "female"}:
            parts.append(f"Gender: {self.gender}")
        if self.interests:
            parts.append(f"Interests: {self.interests}")
        if self.profession:
            parts.append(f"Profession: {self.profession}")
        if self.occasion and self.occasion != "any":
            parts.append(f"Occasion: {self.occasion}")
        return ", ".join(parts) or "No details given"


@dataclass
class TagSet:
    age_tags: list[str] = field(default_factory=list)
    gender_tags: list[str] = field(default_factory=list)
    interest_tags: list[str] = field(default_factory=list)
    profession_tags: list[str] = field(default_factory=list)
    occasion_tags: list[str] = field(default_factory=lambda: ["any"])

    def by_category(self) -> dict[str, list[str]]:
        return {
            "age": list(self.age_tags),
            "gender": list(self.gender_tags),
            "interest": list(self.interest_tags),
            "profession": list(self.profession_tags),
            "occasion": list(self.occasion_tags),
        }

    def match_names(self) -> list[str]:
        """Tag names usable as catalog filters; the catch-all "any" is left out."""
        names: list[str] = []
        for values in self.by_category().values():
            names.extend(value for value in values if value != "any")
        return _dedupe(names)


def _dedupe(values: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for value in values:
        cleaned = str(value or "").strip().lower()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        out.append(cleaned)
    return out


def age_bracket(age: int) -> str:
    if age < 13:
        return "children"
    if age < 20:
        return "teenagers"
    if age < 30:
        return "young adults"
    if age > 65:
        return "seniors"
    return "adults"


def _first_token(text: str) -> str:
    for token in str(text or "").replace(",", " ").split():
        cleaned = token.strip().lower()
        if cleaned:
            return cleaned
    return ""


def rule_based_tags(criteria: RecipientCriteria) -> TagSet:
    tags = TagSet()
    if criteria.age is not None:
        tags.age_tags = [age_bracket(criteria.age)]

    if criteria.gender in {"male", "female"}:
        tags.gender_tags = [criteria.gender, "unisex"]
    else:
        tags.gender_tags = ["unisex"]

    interest = _first_token(criteria.interests)
    if interest:
        tags.interest_tags = [interest]

    profession = _first_token(criteria.profession)
    if profession:
        tags.profession_tags = [profession]

    occasion = str(criteria.occasion or "").strip().lower()
    tags.occasion_tags = _dedupe([occasion, "any"]) if occasion in OCCASION_TAGS else ["any"]
    return tags


def _prompt(criteria: RecipientCriteria) -> str:
    vocab_lines = "\n".join(f"- {category}: {list(values)}" for category, values in VOCABULARY.items())
    return (
        "You classify gift recipients for a gift catalog.\n"
        "Map the recipient below onto the allowed tags and output ONLY valid JSON with keys:\n"
        "age, gender, interest, profession, occasion (each an array of allowed tags).\n"
        f"Allowed tags:\n{vocab_lines}\n"
        f"Recipient: age={criteria.age if criteria.age is not None else 'unknown'}, "
        f"gender={criteria.gender}, interests={criteria.interests or 'unknown'}, "
        f"profession={criteria.profession or 'unknown'}, occasion={criteria.occasion or 'any'}\n"
        "No markdown. No extra keys."
    )


def _normalize(values: Any, allowed: tuple[str, ...]) -> list[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, list):
        return []
    allowed_lookup = {value.casefold(): value for value in allowed}
    out: list[str] = []
    for value in values:
        key = str(value).strip().casefold()
        if key in allowed_lookup:
            out.append(allowed_lookup[key])
    return _dedupe(out)


def extract_tags(criteria: RecipientCriteria, client: CompletionClient | None) -> TagSet:
    """Tag the recipient with the model, falling back to fixed rules. Never raises."""
    if client is None:
        return rule_based_tags(criteria)

    try:
        raw = client.complete(_prompt(criteria), temperature=0.1, max_tokens=300)
        parsed = extract_json_object(raw)
    except Exception as exc:
        _LOGGER.warning("Tag extraction fell back to rules: %s", exc)
        return rule_based_tags(criteria)

    occasion_tags = _normalize(parsed.get("occasion"), OCCASION_TAGS)
    if not occasion_tags:
        _LOGGER.warning("Tag extraction returned no occasion, using rules.")
        return rule_based_tags(criteria)

    return TagSet(
        age_tags=_normalize(parsed.get("age"), AGE_TAGS),
        gender_tags=_normalize(parsed.get("gender"), GENDER_TAGS),
        interest_tags=_normalize(parsed.get("interest"), INTEREST_TAGS),
        profession_tags=_normalize(parsed.get("profession"), PROFESSION_TAGS),
        occasion_tags=occasion_tags,
    )
