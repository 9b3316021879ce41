"""
Tests unitarios para la extraccion de propiedades del work tracker.
"""
import pytest

from opsync.domain.entities.properties import PropertyKind, PropertyValue
from opsync.infrastructure.external.work_tracker.property_extractor import (
    extract_property,
    lookup_property,
    normalize_property_name,
)

from page_factory import date, formula, people, relation, rich_text, rollup_number, select


class TestNormalizePropertyName:

    @pytest.mark.parametrize("raw,expected", [
        ("Push Back Count (QI)", "push_back_count_qi"),
        ("  Late?  ", "late"),
        ("Time Doctor (Client) Project ID", "time_doctor_client_project_id"),
        ("__weird--name__", "weird_name"),
        ("Días", "d_as"),
        ("", ""),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_property_name(raw) == expected


class TestLookup:

    def test_identifier_wins_over_name(self):
        props = {"abc": select("por id"), "Status": select("por nombre")}
        found = lookup_property(props, "abc", "Status")
        assert found["select"]["name"] == "por id"

    def test_falls_back_to_name(self):
        props = {"Status": select("por nombre")}
        assert lookup_property(props, "renamed-id", "Status")["select"]["name"] == "por nombre"

    def test_missing_returns_none(self):
        assert lookup_property({}, "abc", "Status") is None
        assert lookup_property(None, "abc") is None


class TestExtractProperty:

    def test_text_concatenates_segments_in_order(self):
        props = {"Notes": rich_text("Hola ", "mundo", "!")}
        assert extract_property(props, "Notes", "rich_text") == PropertyValue.text("Hola mundo!")

    def test_select_without_option_is_absent(self):
        props = {"Level": select(None)}
        assert extract_property(props, "Level", "select") is None

    def test_status_is_read_as_select(self):
        props = {"Stage": {"id": "s", "type": "status", "status": {"name": "Done"}}}
        value = extract_property(props, "Stage", "status")
        assert value.kind == PropertyKind.SELECT
        assert value.value == "Done"

    def test_multi_select_keeps_order(self):
        props = {"Stack": {"type": "multi_select", "multi_select": [{"name": "Liquid"}, {"name": "JS"}]}}
        assert extract_property(props, "Stack", "multi_select").value == ("Liquid", "JS")

    def test_date_is_structured(self):
        props = {"Due": date("2024-05-01", "2024-05-03")}
        value = extract_property(props, "Due", "date")
        assert value.kind == PropertyKind.DATE
        assert value.value.start == "2024-05-01"
        assert value.value.end == "2024-05-03"
        assert value.value.start_at.day == 1

    def test_people_and_relation_keep_order(self):
        props = {"Dev": people("u2", "u1"), "Tasks": relation("t1", "t2")}
        assert extract_property(props, "Dev", "people").as_ids() == ("u2", "u1")
        assert extract_property(props, "Tasks", "relation").as_ids() == ("t1", "t2")

    def test_malformed_number_returns_none(self):
        props = {"Hours": {"type": "number", "number": "muchas"}}
        assert extract_property(props, "Hours", "number") is None

    def test_malformed_payload_does_not_raise(self):
        props = {"Dev": {"type": "people", "people": "no-es-lista"}}
        assert extract_property(props, "Dev", "people") is None

    def test_unknown_kind_returns_none(self):
        props = {"Btn": {"type": "button", "button": {}}}
        assert extract_property(props, "Btn", "button") is None

    def test_files_return_urls(self):
        props = {"Docs": {"type": "files", "files": [
            {"file": {"url": "https://a/1.pdf"}},
            {"external": {"url": "https://b/2.png"}},
        ]}}
        value = extract_property(props, "Docs", "files")
        assert value.kind == PropertyKind.LIST
        assert value.value == ("https://a/1.pdf", "https://b/2.png")


class TestComputedProperties:

    @pytest.mark.parametrize("sub_kind,raw,expected_kind", [
        ("number", 3, PropertyKind.NUMBER),
        ("string", "⌚️ On Time", PropertyKind.TEXT),
        ("boolean", True, PropertyKind.BOOLEAN),
    ])
    def test_formula_unwraps_by_declared_sub_kind(self, sub_kind, raw, expected_kind):
        value = extract_property({"F": formula(sub_kind, raw)}, "F", "formula")
        assert value.kind == expected_kind
        assert value.value == raw

    def test_formula_date(self):
        value = extract_property({"F": formula("date", {"start": "2024-01-02"})}, "F", "formula")
        assert value.kind == PropertyKind.DATE
        assert value.value.start == "2024-01-02"

    def test_formula_null_is_absent(self):
        assert extract_property({"F": formula("number", None)}, "F", "formula") is None

    def test_declared_scalar_drifted_to_formula(self):
        props = {"Hours": formula("number", 12.5)}
        assert extract_property(props, "Hours", "number") == PropertyValue.number(12.5)

    def test_rollup_number(self):
        assert extract_property({"R": rollup_number(7)}, "R", "rollup").value == 7

    def test_rollup_array_of_people_items(self):
        prop = {"type": "rollup", "rollup": {"type": "array", "array": [
            {"type": "people", "people": [{"object": "user", "id": "u1"}]},
            {"type": "people", "people": [{"object": "user", "id": "u2"}, {"object": "user", "id": "u3"}]},
        ]}}
        assert extract_property({"AM": prop}, "AM", "rollup").as_ids() == ("u1", "u2", "u3")

    def test_rollup_array_of_relation_items(self):
        prop = {"type": "rollup", "rollup": {"type": "array", "array": [
            {"type": "relation", "relation": [{"id": "r1"}]},
            {"type": "relation", "relation": [{"id": "r2"}]},
        ]}}
        assert extract_property({"R": prop}, "R", "rollup").as_ids() == ("r1", "r2")

    def test_rollup_array_of_raw_users(self):
        prop = {"type": "rollup", "rollup": {"type": "array", "array": [
            {"object": "user", "id": "u1"}, {"object": "user", "id": "u2"},
        ]}}
        value = extract_property({"R": prop}, "R", "rollup")
        assert value.kind == PropertyKind.ID_LIST
        assert value.as_ids() == ("u1", "u2")

    def test_rollup_array_with_people_field(self):
        prop = {"type": "rollup", "rollup": {"type": "array", "array": [
            {"type": "wrapper", "people": {"id": "u1"}},
            {"type": "wrapper", "people": [{"id": "u2"}]},
        ]}}
        assert extract_property({"R": prop}, "R", "rollup").as_ids() == ("u1", "u2")

    def test_rollup_array_of_scalars(self):
        prop = {"type": "rollup", "rollup": {"type": "array", "array": [
            {"type": "number", "number": 2},
            {"type": "rich_text", "rich_text": [{"plain_text": "dos"}]},
        ]}}
        value = extract_property({"R": prop}, "R", "rollup")
        assert value.kind == PropertyKind.LIST
        assert value.value == (2, "dos")
