# Tests for provider JSON enforcement: extraction, repair, strict validation

import json

import pytest

from conftest import make_recommendation
from school_recommender.models import RecommendationList
from school_recommender.utils.schema_enforcer import (
    JSONEnforceError,
    _extract_fenced_json,
    _extract_json_anywhere,
    _simple_repairs,
    enforce_recommendations,
    to_provider_schema,
)


class TestExtraction:

    def test_extract_fenced_array(self):
        text = 'Here you go:\n```json\n[{"a": 1}]\n```\nDone!'
        assert _extract_fenced_json(text) == '[{"a": 1}]'

    def test_extract_generic_fence(self):
        text = '```\n[{"a": [1, 2]}]\n```'
        assert _extract_fenced_json(text) == '[{"a": [1, 2]}]'

    def test_extract_balanced_array_with_quoted_brackets(self):
        text = 'Sure! [{"note": "brackets ] inside"}, {"b": [2]}] trailing words'
        assert _extract_json_anywhere(text) == '[{"note": "brackets ] inside"}, {"b": [2]}]'

    def test_extract_nothing(self):
        assert _extract_json_anywhere("no json at all") is None

    def test_simple_repairs(self):
        assert _simple_repairs('[{"a": 1,},]') == '[{"a": 1}]'
        assert _simple_repairs('“x”') == '"x"'


class TestEnforceRecommendations:

    def test_valid_payload_keeps_order(self):
        raw = [make_recommendation("Stellenbosch University"), make_recommendation("UNISA")]
        result = enforce_recommendations(json.dumps(raw))
        assert [r.institution_name for r in result.root] == ["Stellenbosch University", "UNISA"]
        course = result.root[0].recommended_courses[0]
        assert course.aps_score == 30
        assert course.requirements[0].minimum_mark == 60

    def test_fenced_payload_with_trailing_comma(self):
        raw = json.dumps([make_recommendation("UWC")])
        text = f"```json\n{raw[:-1]},]\n```"
        assert enforce_recommendations(text).root[0].institution_name == "UWC"

    def test_valid_payload_kept_verbatim(self):
        rec = make_recommendation("St Mary’s College", kind="Private College", course="BA in “Digital” Media")
        rec["recommendedCourses"][0]["requirements"][0]["subject"] = "English, Home Language ]"
        result = enforce_recommendations(json.dumps([rec], ensure_ascii=False))
        school = result.root[0]
        assert school.institution_name == "St Mary’s College"
        assert school.recommended_courses[0].course_name == "BA in “Digital” Media"
        assert school.recommended_courses[0].requirements[0].subject == "English, Home Language ]"

    def test_repairs_only_when_parse_fails(self):
        raw = json.dumps([make_recommendation("Mangosuthu University of Technology")])
        text = raw[:-1] + ",]"
        assert enforce_recommendations(text).root[0].institution_name == "Mangosuthu University of Technology"

    def test_aps_score_optional(self):
        rec = make_recommendation("Boland TVET College", kind="TVET College")
        del rec["recommendedCourses"][0]["apsScore"]
        result = enforce_recommendations(json.dumps([rec]))
        assert result.root[0].recommended_courses[0].aps_score is None

    def test_empty_list_is_valid(self):
        assert enforce_recommendations("[]").root == []

    @pytest.mark.parametrize("mutate", [
        lambda r: r.pop("website"),
        lambda r: r.update(institutionType="High School"),
        lambda r: r.update(recommendedCourses=[]),
        lambda r: r["recommendedCourses"][0].update(requirements=[]),
        lambda r: r["recommendedCourses"][0].pop("courseName"),
        lambda r: r["recommendedCourses"][0]["requirements"][0].pop("minimumMark"),
    ])
    def test_malformed_structures_fail(self, mutate):
        rec = make_recommendation("NWU")
        mutate(rec)
        with pytest.raises(JSONEnforceError) as exc:
            enforce_recommendations(json.dumps([rec]))
        assert exc.value.stage == "schema_validate"

    def test_not_json_fails(self):
        with pytest.raises(JSONEnforceError) as exc:
            enforce_recommendations("I could not find any institutions, sorry.")
        assert exc.value.stage == "json_decode"

    def test_blank_text_fails(self):
        with pytest.raises(JSONEnforceError) as exc:
            enforce_recommendations("   ")
        assert exc.value.stage == "empty"


class TestProviderSchema:

    def test_schema_shape(self):
        schema = to_provider_schema(RecommendationList)
        assert schema["type"] == "ARRAY"
        item = schema["items"]
        assert item["type"] == "OBJECT"
        assert set(item["required"]) == {"institutionName", "institutionType", "website", "recommendedCourses"}
        assert item["properties"]["institutionType"]["enum"] == ["University", "TVET College", "Private College"]

        course = item["properties"]["recommendedCourses"]["items"]
        assert set(course["required"]) == {"courseName", "requirements"}
        assert course["properties"]["apsScore"]["type"] == "NUMBER"
        assert course["properties"]["apsScore"]["nullable"] is True

        requirement = course["properties"]["requirements"]["items"]
        assert set(requirement["required"]) == {"subject", "minimumMark"}
        assert requirement["properties"]["minimumMark"]["type"] == "NUMBER"

    def test_schema_has_no_refs(self):
        dumped = json.dumps(to_provider_schema(RecommendationList))
        assert "$ref" not in dumped and "$defs" not in dumped
