"""Tests for esearch.utils: key mapping, parse helpers and NDJSON."""
from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest

from esearch.collections import DateRange, DictObject
from esearch.utils import (
    camel_key,
    decode_base64,
    map_keys,
    ndjson_dumps,
    parse_date,
    parse_datetime,
    snake_key,
)


# ── map_keys ───────────────────────────────────────────────────────────

class TestMapKeys:
    def test_none_returns_same_object(self):
        value = {"a": {"b": 1}}
        assert map_keys(value, None) is value

    @pytest.mark.parametrize("value", [
        {"a": 1, "b": [{"c": 2}]},
        [{"a": 1}, [{"b": 2}]],
        "text",
        42,
        None,
    ])
    def test_identity_is_neutral(self, value):
        assert map_keys(value, lambda k: k) == value

    def test_flat_mapping(self):
        assert map_keys({"a": 1, "b": 2}, str.upper) == {"A": 1, "B": 2}

    def test_nested_mappings(self):
        assert map_keys({"a": {"b": {"c": 1}}}, str.upper) == {"A": {"B": {"C": 1}}}

    def test_mappings_within_lists(self):
        result = map_keys({"a": [{"b": 1}, {"c": [[{"d": 2}]]}]}, str.upper)
        assert result == {"A": [{"B": 1}, {"C": [[{"D": 2}]]}]}

    def test_top_level_list(self):
        assert map_keys([{"a": 1}, 2], str.upper) == [{"A": 1}, 2]

    def test_tuple_kept(self):
        result = map_keys(({"a": 1}, [{"b": 2}]), str.upper)
        assert result == ({"A": 1}, [{"B": 2}])
        assert isinstance(result, tuple)

    def test_non_string_keys_preserved(self):
        assert map_keys({1: {"a": 1}, "b": 2}, str.upper) == {1: {"A": 1}, "B": 2}

    def test_result_is_dict_object(self):
        result = map_keys({"a": {"b": 1}}, str.upper)
        assert isinstance(result, DictObject)
        assert result.A.B == 1

    def test_structured_values_preserved(self):
        now = datetime.now(timezone.utc)
        r = DateRange(date(2024, 1, 1), date(2024, 1, 2))
        result = map_keys({"a": now, "b": r, "c": b"raw", "d": range(1, 3)}, str.upper)
        assert result["A"] is now
        assert result["B"] is r
        assert result["C"] == b"raw"
        assert result["D"] == range(1, 3)

    def test_scalars_unchanged(self):
        assert map_keys(3, str.upper) == 3
        assert map_keys("abc", str.upper) == "abc"

    def test_edge_case_keys(self):
        assert map_keys({"": 1, "key with space": 2}, str.upper) == {"": 1, "KEY WITH SPACE": 2}

    def test_input_not_mutated(self):
        value = {"a": {"b": 1}}
        map_keys(value, str.upper)
        assert value == {"a": {"b": 1}}


# ── key functions ──────────────────────────────────────────────────────

class TestKeyFunctions:
    def test_camel_key(self):
        assert camel_key("created_at") == "createdAt"
        assert camel_key("title") == "title"

    def test_snake_key(self):
        assert snake_key("createdAt") == "created_at"
        assert snake_key("title") == "title"

    def test_leading_underscores_kept(self):
        assert camel_key("_source") == "_source"
        assert camel_key("_seq_no") == "_seqNo"
        assert snake_key("_primaryTerm") == "_primary_term"

    def test_underscores_only(self):
        assert camel_key("_") == "_"
        assert snake_key("") == ""

    def test_with_map_keys(self):
        result = map_keys({"_source": {"published_at": 1}}, camel_key)
        assert result == {"_source": {"publishedAt": 1}}


# ── decode_base64 ──────────────────────────────────────────────────────

class TestDecodeBase64:
    def test_valid(self):
        assert decode_base64("SGVsbG8=") == b"Hello"

    def test_empty(self):
        assert decode_base64("") == b""

    def test_invalid_characters(self):
        assert decode_base64("not base64!") is None

    def test_missing_padding(self):
        assert decode_base64("SGVsbG8") is None


# ── parse_date ─────────────────────────────────────────────────────────

class TestParseDate:
    def test_valid(self):
        assert parse_date("2024-02-06") == date(2024, 2, 6)

    def test_invalid(self):
        assert parse_date("not-a-date") is None

    def test_out_of_range(self):
        assert parse_date("2024-02-30") is None

    @pytest.mark.parametrize("value", ["20240206", "2024-W06-2", "2024-037", "2024-2-6", " 2024-02-06"])
    def test_non_extended_formats_rejected(self, value):
        assert parse_date(value) is None


# ── parse_datetime ─────────────────────────────────────────────────────

class TestParseDatetime:
    def test_zulu(self):
        assert parse_datetime("2024-05-15T20:46:58Z") == datetime(2024, 5, 15, 20, 46, 58, tzinfo=timezone.utc)

    def test_zero_offset(self):
        parsed = parse_datetime("2024-05-15T20:46:58+00:00")
        assert parsed.tzinfo is timezone.utc

    def test_fractional_seconds(self):
        parsed = parse_datetime("2024-05-15T20:46:58.123Z")
        assert parsed.microsecond == 123000

    def test_non_zero_offset_rejected(self):
        assert parse_datetime("2024-05-15T20:46:58+02:00") is None

    def test_naive_rejected(self):
        assert parse_datetime("2024-05-15T20:46:58") is None

    def test_malformed(self):
        assert parse_datetime("yesterday") is None

    @pytest.mark.parametrize("value", [
        "20240515T2046Z",
        "20240515T204658Z",
        "2024-05-15T20Z",
        "2024-05-15T20:46Z",
        "2024-05-15 20:46:58Z",
        "2024-W20-3T20:46:58Z",
    ])
    def test_non_extended_formats_rejected(self, value):
        assert parse_datetime(value) is None


# ── ndjson_dumps ───────────────────────────────────────────────────────

class TestNdjsonDumps:
    def test_one_line_per_object(self):
        payload = ndjson_dumps([{"index": {"_id": "1"}}, {"title": "a"}])
        lines = payload.split("\n")
        assert lines[-1] == ""
        assert [json.loads(line) for line in lines[:-1]] == [{"index": {"_id": "1"}}, {"title": "a"}]

    def test_string_lines_passed_through(self):
        assert ndjson_dumps(['{"a":1}', {}]) == '{"a":1}\n{}\n'

    def test_empty(self):
        assert ndjson_dumps([]) == ""
