"""
EcoDex Backend - Oracle Response Parser Tests
===============================================

What we test:
    ✅ JSON surrounded by prose or markdown fences is extracted
    ✅ Braces inside string values don't break extraction
    ✅ Later spans are tried when the first one isn't valid JSON
    ✅ Missing JSON / invalid JSON / schema violations raise
       MalformedOracleResponseError carrying the raw reply
    ✅ Loose values are normalized (type case, status spelling, nulls)
"""

import json

import pytest

from ecodex.exceptions import MalformedOracleResponseError
from ecodex.services.oracle_parser import extract_json_object, parse_species_description


class TestExtractJsonObject:

    def test_returns_none_without_braces(self):
        assert extract_json_object("I think this is a fern!") is None

    def test_ignores_braces_inside_strings(self):
        text = 'Result: {"name": "Curly {brace} fern", "note": "a \\"quoted\\" }"} trailing'
        assert extract_json_object(text) == {"name": "Curly {brace} fern", "note": 'a "quoted" }'}

    def test_skips_invalid_span_and_uses_next(self):
        text = 'Template {name: ???} then the answer {"name": "Fern"}'
        assert extract_json_object(text) == {"name": "Fern"}

    def test_nested_objects_kept_whole(self):
        text = 'x {"a": {"b": {"c": 1}}} y'
        assert extract_json_object(text) == {"a": {"b": {"c": 1}}}

    def test_unclosed_brace_in_prose_does_not_hide_object(self):
        payload = {"name": "Jaguar", "scientificName": "Panthera onca", "type": "animal"}
        text = "Note: the braces { are just decoration. " + json.dumps(payload) + " Hope that helps."
        assert extract_json_object(text) == payload

    def test_unclosed_brace_after_object_is_ignored(self):
        assert extract_json_object('{"name": "Fern"} and then { nothing') == {"name": "Fern"}

    def test_invalid_json_only_raises(self):
        with pytest.raises(MalformedOracleResponseError) as exc_info:
            extract_json_object("{not json at all}")
        assert exc_info.value.raw_response == "{not json at all}"


class TestParseSpeciesDescription:

    def test_prose_around_json_is_ignored(self, oracle_reply):
        species = parse_species_description(oracle_reply())
        assert species.name == "Jaguar"
        assert species.scientific_name == "Panthera onca"
        assert species.type == "animal"
        assert species.stats.weight == "56-96 kg"
        assert species.abilities[0].name == "Crushing Bite"
        assert len(species.fun_facts) == 2
        assert species.confidence == "High"

    def test_stray_brace_before_reply_still_parses(self, oracle_reply):
        species = parse_species_description("Braces { look odd here. " + oracle_reply(prose=False))
        assert species.scientific_name == "Panthera onca"

    def test_bare_json(self, oracle_reply):
        species = parse_species_description(oracle_reply(prose=False))
        assert species.scientific_name == "Panthera onca"

    def test_no_json_raises_with_raw_text(self):
        raw = "Sorry, I can't identify anything in this picture."
        with pytest.raises(MalformedOracleResponseError) as exc_info:
            parse_species_description(raw)
        assert exc_info.value.raw_response == raw
        assert exc_info.value.context["raw_response"] == raw

    def test_empty_reply_raises(self):
        with pytest.raises(MalformedOracleResponseError):
            parse_species_description("")

    def test_missing_required_field_raises(self):
        raw = json.dumps({"name": "Jaguar", "type": "animal"})
        with pytest.raises(MalformedOracleResponseError) as exc_info:
            parse_species_description(raw)
        assert "scientificName" in exc_info.value.context["fields"]
        assert exc_info.value.raw_response == raw

    def test_type_outside_vocabulary_raises(self):
        raw = json.dumps({"name": "Fly agaric", "scientificName": "Amanita muscaria", "type": "fungus"})
        with pytest.raises(MalformedOracleResponseError):
            parse_species_description(raw)

    def test_loose_values_normalized(self):
        raw = json.dumps({
            "name": "  Giant Sequoia ",
            "scientificName": " Sequoiadendron giganteum ",
            "type": "Plant",
            "description": None,
            "stats": {"size": 85, "lifespan": "3000 years"},
            "abilities": None,
            "funFacts": None,
            "conservationStatus": "Endangered",
        })
        species = parse_species_description(raw)
        assert species.name == "Giant Sequoia"
        assert species.scientific_name == "Sequoiadendron giganteum"
        assert species.type == "plant"
        assert species.description == ""
        assert species.stats.size == "85"
        assert species.abilities == []
        assert species.fun_facts == []
        assert species.conservation_status == "endangered"

    def test_unknown_status_becomes_none(self):
        raw = json.dumps({
            "name": "Dandelion",
            "scientificName": "Taraxacum officinale",
            "type": "plant",
            "conservationStatus": "not evaluated",
        })
        assert parse_species_description(raw).conservation_status is None
