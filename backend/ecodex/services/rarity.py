"""
EcoDex Backend - Rarity, Experience and Level Rules
=====================================================

What:  Pure, deterministic functions for the gamification rules:
       rarity tier from conservation status + commonality, experience value
       of a rarity tier, and level from total experience.
Who:   RarityClassifier step of DiscoveryPipeline; DiscoveryLedger for XP
       and level; response schemas for the allowed vocabularies.

Rarity precedence (first match wins, endangerment always dominates the
reported commonality):
    1. critically_endangered | extinct → legendary
    2. endangered                      → epic
    3. vulnerable | near_threatened    → rare
    4. commonality mentions "uncommon" → uncommon
    5. anything else                   → common
"""

from typing import Optional

# ── Vocabularies ──────────────────────────────────────────────────────────
SPECIES_TYPES = ("plant", "animal")

RARITIES = ("common", "uncommon", "rare", "epic", "legendary")

CONSERVATION_STATUSES = (
    "least_concern",
    "near_threatened",
    "vulnerable",
    "endangered",
    "critically_endangered",
    "extinct",
)

DEFAULT_CONSERVATION_STATUS = "least_concern"

# Experience awarded per discovery, before the first-discovery multiplier
RARITY_EXPERIENCE = {
    "common": 10,
    "uncommon": 25,
    "rare": 50,
    "epic": 100,
    "legendary": 200,
}

FIRST_DISCOVERY_MULTIPLIER = 2
EXPERIENCE_PER_LEVEL = 100


def normalize_conservation_status(status: Optional[str]) -> Optional[str]:
    """
    Map an oracle-reported status onto the known vocabulary.

    "Critically Endangered", "critically-endangered" and
    "critically_endangered" all normalize to "critically_endangered".
    Returns None for absent or unrecognized values.
    """
    if not status or not isinstance(status, str):
        return None
    key = status.strip().lower().replace("-", "_").replace(" ", "_")
    return key if key in CONSERVATION_STATUSES else None


def classify_rarity(conservation_status: Optional[str], commonality: Optional[str]) -> str:
    """Return the rarity tier for a species. See module docstring for precedence."""
    status = normalize_conservation_status(conservation_status)

    if status in ("critically_endangered", "extinct"):
        return "legendary"
    if status == "endangered":
        return "epic"
    if status in ("vulnerable", "near_threatened"):
        return "rare"
    if commonality and "uncommon" in commonality.lower():
        return "uncommon"
    return "common"


def experience_for_rarity(rarity: str) -> int:
    """
    Experience value of a rarity tier.

    Raises:
        ValueError: Unknown tier (a programming error, tiers come from
                    classify_rarity).
    """
    try:
        return RARITY_EXPERIENCE[rarity]
    except KeyError:
        raise ValueError(f"Unknown rarity '{rarity}'. Must be one of: {RARITIES}") from None


def experience_gained(experience_points: int, is_first_discovery: bool) -> int:
    """First discoveries are worth double."""
    return experience_points * (FIRST_DISCOVERY_MULTIPLIER if is_first_discovery else 1)


def level_for_experience(experience: int) -> int:
    """Level 1 at 0-99 XP, level 2 at 100-199 XP, and so on."""
    if experience < 0:
        raise ValueError("experience cannot be negative")
    return experience // EXPERIENCE_PER_LEVEL + 1
