"""Tests for the path resolver."""

import pytest

from stashx._paths import get_at_path, set_at_path


class TestGetAtPath:
    def test_empty_path_is_whole_value(self):
        value = {"a": 1}
        assert get_at_path(value, ()) is value

    def test_nested_dict_and_list(self):
        value = {"users": [{"name": "Ada"}, {"name": "Grace"}]}
        assert get_at_path(value, ("users", 1, "name")) == "Grace"

    def test_missing_steps_read_as_none(self):
        assert get_at_path({"a": None}, ("a", "b", "c")) is None
        assert get_at_path({"a": [1]}, ("a", 5)) is None
        assert get_at_path(7, ("a",)) is None


class TestSetAtPath:
    def test_does_not_mutate_input(self):
        value = {"a": {"b": 1}}
        result = set_at_path(value, ("a", "b"), 2)
        assert value == {"a": {"b": 1}}
        assert result == {"a": {"b": 2}}

    def test_copies_every_level_and_shares_siblings(self):
        sibling = {"theme": "dark"}
        value = {"user": {"name": "Ada"}, "settings": sibling}
        result = set_at_path(value, ("user", "name"), "Grace")
        assert result is not value
        assert result["user"] is not value["user"]
        assert result["settings"] is sibling

    def test_lists_stay_lists(self):
        value = [{"done": False}, {"done": False}]
        result = set_at_path(value, (0, "done"), True)
        assert isinstance(result, list)
        assert result == [{"done": True}, {"done": False}]
        assert result[1] is value[1]

    def test_list_padding(self):
        assert set_at_path([1], (3,), 4) == [1, None, None, 4]

    def test_tuples_stay_tuples(self):
        assert set_at_path((1, 2, 3), (1,), 20) == (1, 20, 3)

    def test_tuple_padding(self):
        assert set_at_path((1, 2), (4,), "x") == (1, 2, None, None, "x")

    def test_string_key_on_list_raises(self):
        value = {"items": [1, 2, 3]}
        with pytest.raises(TypeError, match="meta"):
            set_at_path(value, ("items", "meta"), "x")
        assert value == {"items": [1, 2, 3]}

    def test_string_key_on_tuple_raises(self):
        with pytest.raises(TypeError):
            set_at_path((1, 2), ("a",), "x")

    def test_missing_intermediate_becomes_dict(self):
        assert set_at_path({}, ("a", "b"), 1) == {"a": {"b": 1}}
        assert set_at_path({"a": 5}, ("a", "b"), 1) == {"a": {"b": 1}}
