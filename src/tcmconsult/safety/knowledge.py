"""Static safety knowledge tables used by the checkers.

All keys are lowercase; matching is done on lowercased recommendation text.
"""

from __future__ import annotations

import re

from tcmconsult.safety.schema import InteractionSeverity, RequiredAction, Severity

# Allergen -> word-boundary pattern for cross-reactive foods.
CROSS_REACTIVITY: dict[str, re.Pattern[str]] = {
    "nuts": re.compile(r"\b(almond|walnut|cashew|pecan|hazelnut|pistachio|macadamia|peanut)s?\b"),
    "dairy": re.compile(r"\b(milk|cheese|butter|yogurt|yoghurt|cream|whey|casein|ghee)\b"),
    "gluten": re.compile(r"\b(wheat|barley|rye|malt|seitan|couscous|semolina)\b"),
    "shellfish": re.compile(r"\b(shrimp|prawn|crab|lobster|oyster|clam|mussel|scallop)s?\b"),
    "soy": re.compile(r"\b(soy|soya|tofu|tempeh|edamame|miso)\b"),
    "eggs": re.compile(r"\b(egg|eggs|albumin|mayonnaise|meringue)\b"),
    "fish": re.compile(r"\b(salmon|tuna|cod|anchovy|sardine|mackerel|fish sauce)\b"),
}

# Alias -> canonical allergen, so "peanut" and "groundnut" hit the same rows.
ALLERGEN_SYNONYMS: dict[str, str] = {
    "peanut": "nuts",
    "peanuts": "nuts",
    "groundnut": "nuts",
    "tree nut": "nuts",
    "tree nuts": "nuts",
    "花生": "nuts",
    "坚果": "nuts",
    "lactose": "dairy",
    "milk": "dairy",
    "乳制品": "dairy",
    "wheat": "gluten",
    "麸质": "gluten",
    "seafood": "shellfish",
    "shrimp": "shellfish",
    "虾": "shellfish",
    "海鲜": "shellfish",
    "soybean": "soy",
    "大豆": "soy",
    "egg": "eggs",
    "鸡蛋": "eggs",
    "鱼": "fish",
    "核桃": "nuts",
    "蟹": "shellfish",
    "豆腐": "soy",
    "牛奶": "dairy",
}

ALLERGY_ALTERNATIVES: dict[str, str] = {
    "nuts": "Use seeds (pumpkin, sunflower) instead of nuts",
    "dairy": "Use plant-based milk alternatives such as oat or rice milk",
    "eggs": "Use flax or chia seeds as an egg substitute",
    "shellfish": "Use seaweed or fish alternatives for minerals",
    "soy": "Use other legumes such as mung or adzuki beans",
    "gluten": "Use rice or quinoa instead of wheat-based grains",
    "fish": "Use seaweed or an algal omega-3 source instead of fish",
    "sesame": "Use sunflower seed butter instead of sesame paste",
}

# drug -> herb -> (severity, mechanism, management)
KNOWN_INTERACTIONS: dict[str, dict[str, tuple[InteractionSeverity, str, str]]] = {
    "warfarin": {
        "ginkgo": (
            InteractionSeverity.MAJOR,
            "Additive antiplatelet effect increases bleeding risk",
            "Avoid combination; monitor INR if already taking both",
        ),
        "ginseng": (
            InteractionSeverity.MODERATE,
            "May reduce anticoagulant effect",
            "Monitor INR closely",
        ),
        "garlic": (
            InteractionSeverity.MODERATE,
            "Antiplatelet activity may increase bleeding risk",
            "Limit medicinal doses; monitor for bruising",
        ),
        "dong quai": (
            InteractionSeverity.MAJOR,
            "Coumarin constituents potentiate anticoagulation",
            "Avoid combination",
        ),
    },
    "metformin": {
        "bitter melon": (
            InteractionSeverity.MODERATE,
            "Additive glucose-lowering effect",
            "Monitor blood glucose for hypoglycaemia",
        ),
    },
    "lisinopril": {
        "hawthorn": (
            InteractionSeverity.MODERATE,
            "Additive hypotensive effect",
            "Monitor blood pressure",
        ),
    },
    "digoxin": {
        "licorice": (
            InteractionSeverity.MAJOR,
            "Licorice-induced hypokalaemia increases digoxin toxicity",
            "Avoid combination; monitor potassium",
        ),
    },
}

INTERACTION_SEVERITY_MAP: dict[InteractionSeverity, Severity] = {
    InteractionSeverity.MINOR: Severity.LOW,
    InteractionSeverity.MODERATE: Severity.MEDIUM,
    InteractionSeverity.MAJOR: Severity.HIGH,
    InteractionSeverity.SEVERE: Severity.CRITICAL,
}

INTERACTION_ACTION_MAP: dict[InteractionSeverity, RequiredAction] = {
    InteractionSeverity.MINOR: RequiredAction.MONITOR,
    InteractionSeverity.MODERATE: RequiredAction.SEEK_MEDICAL_ADVICE,
    InteractionSeverity.MAJOR: RequiredAction.SEEK_MEDICAL_ADVICE,
    InteractionSeverity.SEVERE: RequiredAction.AVOID_COMPLETELY,
}

# Herbs contraindicated in pregnancy: term -> (surface forms, absolute, reason)
PREGNANCY_CONTRAINDICATIONS: dict[str, tuple[tuple[str, ...], bool, str]] = {
    "angelica root": (("angelica", "dong quai", "当归"), True, "Blood-moving herb, risk of miscarriage"),
    "safflower": (("safflower", "红花"), True, "Strongly blood-moving, may stimulate uterine contractions"),
    "peach kernel": (("peach kernel", "桃仁"), True, "Breaks blood stasis, uterine stimulant"),
    "rhubarb": (("rhubarb", "大黄"), False, "Purgative, may stimulate uterine contractions"),
    "cinnamon bark": (("cinnamon bark", "肉桂"), False, "Hot and moving, use only under supervision"),
}

# Condition keyword -> herb -> (surface forms, absolute, reason)
CONDITION_CONTRAINDICATIONS: dict[str, dict[str, tuple[tuple[str, ...], bool, str]]] = {
    "hypertension": {
        "licorice": (("licorice", "liquorice", "甘草"), False, "Mineralocorticoid effect raises blood pressure"),
        "ephedra": (("ephedra", "ma huang", "麻黄"), True, "Sympathomimetic, raises blood pressure"),
    },
    "diabetes": {
        "licorice": (("licorice", "liquorice", "甘草"), False, "May affect glucose regulation"),
        "sugar": (("brown sugar", "honey", "malt sugar"), False, "Raises blood glucose"),
    },
    "heart disease": {
        "ephedra": (("ephedra", "ma huang", "麻黄"), True, "Arrhythmia and cardiac stress risk"),
    },
    "kidney disease": {
        "aristolochia": (("aristolochia", "guang fang ji", "关木通"), True, "Nephrotoxic aristolochic acids"),
    },
    "bleeding disorder": {
        "safflower": (("safflower", "红花"), True, "Blood-moving, increases bleeding risk"),
        "ginkgo": (("ginkgo", "银杏"), False, "Antiplatelet effect"),
    },
}

EMERGENCY_KEYWORDS: tuple[str, ...] = (
    "chest pain",
    "difficulty breathing",
    "severe headache",
    "loss of consciousness",
    "severe bleeding",
    "stroke symptoms",
    "heart attack",
    "anaphylaxis",
    "severe abdominal pain",
    "high fever",
    "seizure",
    "poisoning",
    "severe burns",
    "choking",
    "cardiac arrest",
    "respiratory distress",
    "severe trauma",
    "overdose",
    "severe dehydration",
    "diabetic emergency",
)

# Keyword -> (condition, recommended action) for the well-known presentations.
CRITICAL_SYMPTOMS: dict[str, tuple[str, str]] = {
    "chest pain": ("Chest Pain", "Call emergency services immediately, may indicate heart attack"),
    "difficulty breathing": ("Respiratory Distress", "Call emergency services, ensure airway is clear"),
    "loss of consciousness": ("Unconsciousness", "Call emergency services, check breathing and pulse"),
    "severe bleeding": ("Severe Hemorrhage", "Call emergency services, apply direct pressure to wound"),
}

PREGNANCY_UNSAFE_KEYWORDS: tuple[str, ...] = (
    "strong herbs",
    "blood-moving",
    "cold nature",
    "purgative",
    "stimulating",
)

PEDIATRIC_CAUTION_KEYWORDS: tuple[str, ...] = ("strong", "potent")
GERIATRIC_CAUTION_KEYWORDS: tuple[str, ...] = ("cold nature", "cooling")

SAFETY_ADVICE: dict[RequiredAction, str] = {
    RequiredAction.EMERGENCY_CARE: "Seek immediate emergency medical care",
    RequiredAction.SEEK_MEDICAL_ADVICE: "Consult healthcare provider before following recommendations",
    RequiredAction.AVOID_COMPLETELY: "Avoid flagged substances completely",
    RequiredAction.MONITOR: "Monitor for any adverse reactions",
    RequiredAction.MODIFY_DOSAGE: "Consider dosage modifications under professional guidance",
}

# Herb -> gentler substitute offered when the herb is flagged.
HERB_SUBSTITUTES: dict[str, str] = {
    "ginkgo": "Consider hawthorn berry tea for circulation support (check with your doctor)",
    "ginseng": "Consider codonopsis (dang shen) as a milder qi tonic",
    "licorice": "Consider jujube dates for harmonising formulas",
    "ephedra": "Consider perilla leaf for mild exterior symptoms",
    "safflower": "Consider gentle warm compresses instead of blood-moving herbs",
    "angelica": "Consider nourishing foods such as black sesame and goji berries",
    "rhubarb": "Consider increasing dietary fibre for bowel regularity",
}
