"""Recommendation personalization.

The orchestrator only depends on the ``Personalizer`` interface. The
rule-based implementation rewrites dietary advice around allergies,
dietary type and disliked foods; other categories pass through untouched.
"""

from __future__ import annotations

import abc
import re

import structlog

from tcmconsult.diagnostic.schema import DietaryType, PersonalizationFactors, PersonalizationResult
from tcmconsult.safety.knowledge import ALLERGEN_SYNONYMS, CROSS_REACTIVITY
from tcmconsult.safety.schema import RecommendationSet

logger = structlog.get_logger()

ALLERGEN_REPLACEMENTS: dict[str, str] = {
    "nuts": "pumpkin seeds",
    "dairy": "oat milk",
    "eggs": "flax eggs",
    "shellfish": "seaweed",
    "soy": "mung beans",
    "gluten": "rice",
    "fish": "seaweed",
    "sesame": "sunflower seeds",
}

VEGETARIAN_SWAPS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(meat|beef|pork|lamb|mutton)\b", re.IGNORECASE), "plant protein"),
    (re.compile(r"\b(fish|seafood)\b", re.IGNORECASE), "seaweed"),
    (re.compile(r"\bchicken\b", re.IGNORECASE), "tofu"),
)

VEGAN_SWAPS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(dairy|milk)\b", re.IGNORECASE), "plant milk"),
    (re.compile(r"\bcheese\b", re.IGNORECASE), "nutritional yeast"),
    (re.compile(r"\byogh?urt\b", re.IGNORECASE), "plant-based yogurt"),
    (re.compile(r"\bbutter\b", re.IGNORECASE), "plant-based spread"),
    (re.compile(r"\beggs?\b", re.IGNORECASE), "flax eggs"),
    (re.compile(r"\bhoney\b", re.IGNORECASE), "maple syrup"),
)


class Personalizer(abc.ABC):
    """Adapts generated recommendations to one patient."""

    @abc.abstractmethod
    async def personalize(
        self, recommendations: RecommendationSet, factors: PersonalizationFactors
    ) -> PersonalizationResult:
        """Return adapted recommendations and a list of human-readable adjustments."""


def _allergen_pattern(allergen: str) -> tuple[str, re.Pattern[str]]:
    canonical = ALLERGEN_SYNONYMS.get(allergen, allergen)
    forms = {allergen, canonical}
    forms.update(alias for alias, target in ALLERGEN_SYNONYMS.items() if target == canonical)
    alternation = "|".join(re.escape(f) for f in sorted(forms, key=len, reverse=True))
    cross = CROSS_REACTIVITY.get(canonical)
    if cross is not None:
        alternation = f"{alternation}|{cross.pattern}"
    return canonical, re.compile(alternation, re.IGNORECASE)


class RuleBasedPersonalizer(Personalizer):
    """Deterministic dietary substitutions, no model calls."""

    def adapt_dietary(self, text: str, factors: PersonalizationFactors) -> tuple[str, list[str]]:
        adjustments: list[str] = []

        for allergy in factors.allergies:
            key = allergy.strip().lower()
            if not key:
                continue
            canonical, pattern = _allergen_pattern(key)
            if pattern.search(text):
                replacement = ALLERGEN_REPLACEMENTS.get(canonical, "a suitable alternative")
                text = pattern.sub(replacement, text)
                adjustments.append(f"Replaced {allergy} with {replacement} due to allergy")

        swaps: tuple[tuple[re.Pattern[str], str], ...] = ()
        if factors.dietary_type == DietaryType.VEGETARIAN:
            swaps = VEGETARIAN_SWAPS
        elif factors.dietary_type == DietaryType.VEGAN:
            swaps = VEGETARIAN_SWAPS + VEGAN_SWAPS
        swapped = False
        for pattern, replacement in swaps:
            if pattern.search(text):
                text = pattern.sub(replacement, text)
                swapped = True
        if swapped:
            adjustments.append(f"Replaced animal products for a {factors.dietary_type} diet")

        for disliked in factors.disliked_foods:
            if disliked and disliked.lower() in text.lower():
                text = re.sub(re.escape(disliked), "a similar seasonal food", text, flags=re.IGNORECASE)
                adjustments.append(f"Replaced {disliked} based on preferences")

        return text, adjustments

    async def personalize(
        self, recommendations: RecommendationSet, factors: PersonalizationFactors
    ) -> PersonalizationResult:
        dietary: list[str] = []
        adjustments: list[str] = []
        for rec in recommendations.dietary:
            adapted, changes = self.adapt_dietary(rec, factors)
            dietary.append(adapted)
            adjustments.extend(changes)

        logger.info("personalization_applied", adjustments=len(adjustments))
        return PersonalizationResult(
            recommendations=recommendations.model_copy(update={"dietary": dietary}),
            adjustments=adjustments,
        )
