"""
JSON utilities backed by orjson
===============================

A small facade with the interface of the standard json module, used as
`import json_utils as json` across the project. orjson returns bytes; these
helpers always hand back str.
"""

import orjson
from typing import Any, Callable, Optional


def dumps(
    obj: Any,
    indent: Optional[int] = None,
    sort_keys: bool = False,
    default: Optional[Callable[[Any], Any]] = None,
) -> str:
    """
    Serialize obj to a JSON string.

    Args:
        obj: Object to serialize
        indent: Any non-None value pretty prints with two-space indentation
        sort_keys: Emit dictionary keys in sorted order
        default: Callable for objects orjson cannot serialize natively

    Returns:
        JSON string (non-ASCII characters such as anchor delimiters are kept as-is)
    """
    option = orjson.OPT_SERIALIZE_UUID | orjson.OPT_NON_STR_KEYS
    if indent is not None:
        option |= orjson.OPT_INDENT_2
    if sort_keys:
        option |= orjson.OPT_SORT_KEYS
    return orjson.dumps(obj, default=default, option=option).decode("utf-8")


def loads(s: Any) -> Any:
    """Deserialize a JSON document (str, bytes or bytearray)."""
    return orjson.loads(s)


def dump(obj: Any, fp, indent: Optional[int] = None) -> None:
    """Serialize obj and write it to a text file-like object."""
    fp.write(dumps(obj, indent=indent))


def load(fp) -> Any:
    """Deserialize JSON read from a file-like object."""
    return loads(fp.read())


# orjson.JSONDecodeError subclasses ValueError (and json.JSONDecodeError)
JSONDecodeError = orjson.JSONDecodeError
