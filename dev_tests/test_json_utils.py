"""
Tests for json_utils.py - orjson wrapper module.

The wrapper mirrors the standard json interface used across the project
(`import json_utils as json`) and always returns str.
"""

import pytest
import uuid
from io import StringIO

import json_utils as json


class TestDumps:
    """Tests for json.dumps() function."""

    def test_serializes_empty_dict(self):
        """
        Given: An empty dictionary
        When: dumps() is called
        Then: Returns '{}'
        """
        result = json.dumps({})
        assert result == "{}"
        assert isinstance(result, str)

    def test_serializes_list_compactly(self):
        """
        Given: A list of values
        When: dumps() is called
        Then: Returns a compact JSON array
        """
        assert json.dumps([1, 2, "three", None]) == '[1,2,"three",null]'

    def test_serializes_uuid_object(self):
        """
        Given: A UUID object
        When: dumps() is called
        Then: Returns UUID as string without error
        """
        test_uuid = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert "12345678-1234-5678-1234-567812345678" in json.dumps({"id": test_uuid})

    def test_serializes_with_indent(self):
        """
        Given: Data and indent=2
        When: dumps() is called
        Then: Returns formatted JSON with two-space indentation
        """
        result = json.dumps({"key": "value"}, indent=2)
        assert result == '{\n  "key": "value"\n}'

    def test_sort_keys(self):
        assert json.dumps({"b": 1, "a": 2}, sort_keys=True) == '{"a":2,"b":1}'

    def test_anchor_delimiters_are_not_escaped(self):
        """
        Given: Anchored text
        When: dumps() is called
        Then: The anchor delimiters are kept as-is
        """
        assert "⟦P-00001⟧" in json.dumps({"text": "⟦P-00001⟧Hello"})

    def test_default_callable(self):
        class Point:
            def __init__(self, x):
                self.x = x

        result = json.dumps({"p": Point(3)}, default=lambda o: {"x": o.x})
        assert json.loads(result) == {"p": {"x": 3}}

    def test_unserializable_raises(self):
        with pytest.raises(TypeError):
            json.dumps({"p": object()})


class TestLoads:
    """Tests for json.loads() function."""

    def test_parses_str_and_bytes(self):
        assert json.loads('{"a": [1, 2]}') == {"a": [1, 2]}
        assert json.loads(b'[true, null]') == [True, None]

    def test_invalid_json_raises_decode_error(self):
        """
        Given: Malformed JSON
        When: loads() is called
        Then: JSONDecodeError (a ValueError) is raised
        """
        with pytest.raises(json.JSONDecodeError):
            json.loads("{broken")
        with pytest.raises(ValueError):
            json.loads("")


class TestFileHelpers:
    """Tests for dump() and load()."""

    def test_dump_then_load(self):
        buffer = StringIO()
        json.dump({"anchor": "P-00001", "offset": 9}, buffer, indent=2)
        buffer.seek(0)
        assert json.load(buffer) == {"anchor": "P-00001", "offset": 9}
