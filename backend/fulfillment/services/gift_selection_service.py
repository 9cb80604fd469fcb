# Overview: Gift selection criteria, candidate filtering and confidence scoring for auto-gifts.

"""
Gift Selection

Pure functions over plain dicts: no database access. Candidate products come
from an external search collaborator as
    {"product_id", "name", "price_cents", "category", "description"?, "image"?}

SCORING (capped at 1.0):
    base                                   0.5
    price / budget <= 0.8                  +0.3
                   <= 1.0                  +0.2
                   <= 1.2                  +0.1
    category matches a preferred category  +0.3
    category fits the recipient age bucket +0.2
    category fits the relationship table   +0.2

FILTERING (before scoring): price over 120% of budget, inappropriate keywords,
or any exclude_items term in name/description/category.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


RELATIONSHIP_MULTIPLIERS = {
    "spouse": 1.5,
    "family": 1.2,
    "close_friend": 1.1,
    "friend": 1.0,
    "colleague": 0.8,
    "acquaintance": 0.7,
}

AGE_CATEGORIES = {
    "teen": ["Electronics", "Sports & Outdoors", "Books & Reading", "Arts & Crafts"],
    "young_adult": ["Electronics", "Fashion & Accessories", "Sports & Outdoors", "Travel & Experiences"],
    "adult": ["Home & Kitchen", "Health & Beauty", "Books & Reading", "Electronics", "Jewelry & Watches"],
    "middle_age": ["Home & Kitchen", "Health & Beauty", "Books & Reading", "Travel & Experiences"],
    "senior": ["Books & Reading", "Health & Beauty", "Home & Kitchen", "Music & Entertainment"],
}

RELATIONSHIP_CATEGORIES = {
    "spouse": ["Jewelry & Watches", "Fashion & Accessories", "Health & Beauty", "Travel & Experiences"],
    "family": ["Home & Kitchen", "Books & Reading", "Electronics", "Health & Beauty"],
    "close_friend": ["Fashion & Accessories", "Electronics", "Sports & Outdoors", "Entertainment"],
    "friend": ["Books & Reading", "Food & Beverages", "Electronics", "Arts & Crafts"],
    "colleague": ["Books & Reading", "Food & Beverages", "Electronics"],
    "acquaintance": ["Books & Reading", "Food & Beverages"],
}

AGE_SEARCH_TERMS = {
    "teen": ["teen", "youth", "student"],
    "young_adult": ["young adult", "millennial", "trendy"],
    "adult": ["professional", "adult", "quality"],
    "middle_age": ["mature", "sophisticated", "premium"],
    "senior": ["senior", "classic", "comfort"],
}

OCCASION_SEARCH_TERMS = {
    "birthday": ["birthday gift", "special occasion"],
    "anniversary": ["anniversary gift", "romantic", "meaningful"],
    "christmas": ["holiday gift", "Christmas present"],
}

INAPPROPRIATE_KEYWORDS = ("adult", "explicit", "inappropriate")

OVER_BUDGET_TOLERANCE = 1.2
MAX_RECOMMENDED_CATEGORIES = 6


@dataclass
class SelectionCriteria:
    relationship_type: str
    budget_limit_cents: int
    gift_categories: list[str] = field(default_factory=list)
    recipient_birth_year: int | None = None
    date_type: str = "birthday"
    exclude_items: list[str] = field(default_factory=list)


def adjusted_budget_cents(base_budget_cents: int, relationship_type: str) -> int:
    """Budget scaled by the relationship multiplier (unknown types use 1.0)."""
    multiplier = RELATIONSHIP_MULTIPLIERS.get(relationship_type, 1.0)
    return int(round(base_budget_cents * multiplier))


def age_category(birth_year: int | None, *, today: date | None = None) -> str:
    if not birth_year:
        return "adult"
    age = (today or date.today()).year - int(birth_year)
    if age < 18:
        return "teen"
    if age < 30:
        return "young_adult"
    if age < 50:
        return "adult"
    if age < 65:
        return "middle_age"
    return "senior"


def search_terms(birth_year: int | None, date_type: str = "birthday", *, today: date | None = None) -> list[str]:
    terms: list[str] = []
    if birth_year:
        terms.extend(AGE_SEARCH_TERMS[age_category(birth_year, today=today)])
    terms.extend(OCCASION_SEARCH_TERMS.get(date_type, []))
    return terms


def recommended_categories(
    relationship_type: str,
    birth_year: int | None = None,
    selected: list[str] | None = None,
    *,
    today: date | None = None,
) -> list[str]:
    """User-selected categories win; otherwise relationship first, then age bucket."""
    if selected:
        return list(selected)

    by_relationship = RELATIONSHIP_CATEGORIES.get(relationship_type, RELATIONSHIP_CATEGORIES["friend"])
    by_age = AGE_CATEGORIES[age_category(birth_year, today=today)]
    combined = list(by_relationship) + [cat for cat in by_age if cat not in by_relationship]
    return combined[:MAX_RECOMMENDED_CATEGORIES]


def build_criteria(
    relationship_type: str,
    budget_limit_cents: int,
    selected_categories: list[str] | None = None,
    recipient_birth_year: int | None = None,
    date_type: str = "birthday",
    exclude_items: list[str] | None = None,
    *,
    today: date | None = None,
) -> SelectionCriteria:
    return SelectionCriteria(
        relationship_type=relationship_type,
        budget_limit_cents=adjusted_budget_cents(budget_limit_cents, relationship_type),
        gift_categories=recommended_categories(
            relationship_type, recipient_birth_year, selected_categories, today=today
        ),
        recipient_birth_year=recipient_birth_year,
        date_type=date_type,
        exclude_items=list(exclude_items or []),
    )


def search_query(criteria: SelectionCriteria, *, today: date | None = None) -> str:
    """Natural-language query handed to the external product search."""
    terms = search_terms(criteria.recipient_birth_year, criteria.date_type, today=today)
    category_text = f" in categories: {', '.join(criteria.gift_categories)}" if criteria.gift_categories else ""
    relationship_text = "romantic partner" if criteria.relationship_type == "spouse" else criteria.relationship_type.replace("_", " ")
    occasion_text = criteria.date_type.replace("_", " ")
    budget = criteria.budget_limit_cents / 100
    query = f"Find a thoughtful {occasion_text} gift for my {relationship_text}{category_text}. Budget: ${budget:.2f}."
    if terms:
        query += f" {', '.join(terms)}."
    return query


# =============================================================================
# FILTER + SCORE
# =============================================================================

def _text(product: dict) -> str:
    return " ".join(
        str(product.get(key) or "") for key in ("name", "description", "category")
    ).lower()


def _category_hit(value: str, categories) -> bool:
    value = (value or "").lower()
    return bool(value) and any(cat.lower() in value for cat in categories)


def filter_candidates(products: list[dict], criteria: SelectionCriteria) -> list[dict]:
    ceiling = criteria.budget_limit_cents * OVER_BUDGET_TOLERANCE
    excluded = [term.lower() for term in criteria.exclude_items if term]
    kept = []
    for product in products:
        if int(product.get("price_cents") or 0) > ceiling:
            continue
        text = _text(product)
        if any(keyword in text for keyword in INAPPROPRIATE_KEYWORDS):
            continue
        if any(term in text for term in excluded):
            continue
        kept.append(product)
    return kept


def score_candidate(product: dict, criteria: SelectionCriteria, *, today: date | None = None) -> float:
    score = 0.5
    price = int(product.get("price_cents") or 0)
    ratio = price / criteria.budget_limit_cents if criteria.budget_limit_cents > 0 else float("inf")

    if ratio <= 0.8:
        score += 0.3
    elif ratio <= 1.0:
        score += 0.2
    elif ratio <= 1.2:
        score += 0.1

    category = product.get("category") or ""
    name = product.get("name") or ""
    if _category_hit(category, criteria.gift_categories) or _category_hit(name, criteria.gift_categories):
        score += 0.3

    if criteria.recipient_birth_year:
        bucket = AGE_CATEGORIES[age_category(criteria.recipient_birth_year, today=today)]
        if _category_hit(category, bucket):
            score += 0.2

    if _category_hit(category, RELATIONSHIP_CATEGORIES.get(criteria.relationship_type, [])):
        score += 0.2

    return round(min(score, 1.0), 4)


def reasoning(product: dict, criteria: SelectionCriteria, *, today: date | None = None) -> str:
    """Short human-readable explanation shown next to a recommendation."""
    reasons = []
    price = int(product.get("price_cents") or 0)
    if price <= criteria.budget_limit_cents * 0.8:
        reasons.append("Great value within budget")
    elif price <= criteria.budget_limit_cents:
        reasons.append("Within your budget")

    if _category_hit(product.get("category") or "", criteria.gift_categories):
        reasons.append("Matches preferred categories")

    if criteria.recipient_birth_year:
        bucket = age_category(criteria.recipient_birth_year, today=today)
        reasons.append(f"Age-appropriate for {bucket.replace('_', ' ')}")

    reasons.append(f"Perfect for your {criteria.relationship_type.replace('_', ' ')}")
    return ", ".join(reasons)
