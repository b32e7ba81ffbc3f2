"""
EcoDex Backend - Rarity, Experience and Level Rule Tests
==========================================================

Pure functions, no fixtures needed.
"""

import pytest

from ecodex.services.rarity import (
    classify_rarity,
    experience_for_rarity,
    experience_gained,
    level_for_experience,
    normalize_conservation_status,
)


class TestClassifyRarity:

    @pytest.mark.parametrize(
        "status,commonality,expected",
        [
            ("critically_endangered", "very common", "legendary"),
            ("extinct", None, "legendary"),
            ("endangered", "very common", "epic"),
            ("vulnerable", "common", "rare"),
            ("near_threatened", None, "rare"),
            ("least_concern", "uncommon", "uncommon"),
            ("least_concern", "Very Uncommon", "uncommon"),
            ("least_concern", "very common", "common"),
            (None, None, "common"),
        ],
    )
    def test_precedence_table(self, status, commonality, expected):
        assert classify_rarity(status, commonality) == expected

    def test_status_dominates_commonality(self):
        """An endangered species reported as very common is still epic."""
        assert classify_rarity("endangered", "very common") == "epic"

    def test_status_spelling_variants(self):
        assert classify_rarity("Critically Endangered", None) == "legendary"
        assert classify_rarity("near-threatened", None) == "rare"

    def test_unrecognized_status_falls_through_to_commonality(self):
        assert classify_rarity("data_deficient", "uncommon") == "uncommon"
        assert classify_rarity("data_deficient", "common") == "common"

    def test_is_deterministic(self):
        results = {classify_rarity("vulnerable", "rare") for _ in range(10)}
        assert results == {"rare"}


class TestNormalizeConservationStatus:

    def test_known_values(self):
        assert normalize_conservation_status(" Least Concern ") == "least_concern"
        assert normalize_conservation_status("ENDANGERED") == "endangered"

    def test_unknown_and_missing(self):
        assert normalize_conservation_status("not evaluated") is None
        assert normalize_conservation_status("") is None
        assert normalize_conservation_status(None) is None


class TestExperience:

    @pytest.mark.parametrize(
        "rarity,points",
        [("common", 10), ("uncommon", 25), ("rare", 50), ("epic", 100), ("legendary", 200)],
    )
    def test_experience_table(self, rarity, points):
        assert experience_for_rarity(rarity) == points

    def test_unknown_rarity_rejected(self):
        with pytest.raises(ValueError):
            experience_for_rarity("mythic")

    def test_first_discovery_doubles(self):
        assert experience_gained(50, is_first_discovery=True) == 100
        assert experience_gained(50, is_first_discovery=False) == 50


class TestLevel:

    @pytest.mark.parametrize(
        "experience,level",
        [(0, 1), (99, 1), (100, 2), (190, 2), (200, 3), (1050, 11)],
    )
    def test_level_formula(self, experience, level):
        assert level_for_experience(experience) == level

    def test_negative_experience_rejected(self):
        with pytest.raises(ValueError):
            level_for_experience(-1)
