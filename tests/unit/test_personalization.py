"""Tests for rule-based recommendation personalization."""

import asyncio

from tcmconsult.diagnostic.personalization import RuleBasedPersonalizer
from tcmconsult.diagnostic.schema import DietaryType, PersonalizationFactors
from tcmconsult.safety.schema import RecommendationSet


def test_allergen_replaced_in_dietary_advice():
    text, adjustments = RuleBasedPersonalizer().adapt_dietary(
        "Shrimp congee with ginger", PersonalizationFactors(allergies=["shellfish"])
    )
    assert "shrimp" not in text.lower()
    assert "seaweed" in text
    assert adjustments == ["Replaced shellfish with seaweed due to allergy"]


def test_vegan_swaps():
    text, adjustments = RuleBasedPersonalizer().adapt_dietary(
        "Chicken soup with milk and honey", PersonalizationFactors(dietary_type=DietaryType.VEGAN)
    )
    assert text == "tofu soup with plant milk and maple syrup"
    assert adjustments == ["Replaced animal products for a vegan diet"]


def test_disliked_foods_replaced():
    text, adjustments = RuleBasedPersonalizer().adapt_dietary(
        "Bitter melon stir fry", PersonalizationFactors(disliked_foods=["bitter melon"])
    )
    assert text == "a similar seasonal food stir fry"
    assert adjustments == ["Replaced bitter melon based on preferences"]


def test_only_dietary_category_changes():
    recs = RecommendationSet(
        dietary=["Shrimp congee"],
        herbal=["Shrimp shell powder"],
        lifestyle=["Walk after meals"],
    )
    result = asyncio.run(
        RuleBasedPersonalizer().personalize(recs, PersonalizationFactors(allergies=["shellfish"]))
    )

    assert result.recommendations.dietary == ["seaweed congee"]
    assert result.recommendations.herbal == ["Shrimp shell powder"]
    assert result.recommendations.lifestyle == ["Walk after meals"]
    assert recs.dietary == ["Shrimp congee"]


def test_omnivore_without_allergies_is_unchanged():
    text, adjustments = RuleBasedPersonalizer().adapt_dietary(
        "Pork and chestnut stew", PersonalizationFactors()
    )
    assert text == "Pork and chestnut stew"
    assert adjustments == []
