# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import dataclasses
import re
import typing
from datetime import datetime
from enum import Enum
from typing import Any, Type, TypeVar

from dacite import Config, from_dict

T = TypeVar("T")

DOCUMENT_CONFIG = Config(check_types=False, cast=[Enum])

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def convert_keys(data: Any, direction: str) -> Any:
    """
    Recursively converts dictionary keys between snake_case and camelCase.

    Args:
        data: A dict, list or scalar value.
        direction: "snake_to_camel" or "camel_to_snake".
    """
    if direction == "snake_to_camel":
        convert = snake_to_camel
    elif direction == "camel_to_snake":
        convert = camel_to_snake
    else:
        raise ValueError(f"Unknown key conversion direction: {direction}")

    if isinstance(data, dict):
        return {
            (convert(k) if isinstance(k, str) else k): convert_keys(v, direction)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item, direction) for item in data]
    return data


def encode_value(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_document(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [encode_value(item) for item in value]
    if isinstance(value, dict):
        # Free-form maps keep their keys as written.
        return {k: encode_value(v) for k, v in value.items()}
    return value


def to_document(record: Any) -> dict:
    """Encodes a dataclass record as a camelCase Firestore document."""
    return {
        snake_to_camel(f.name): encode_value(getattr(record, f.name))
        for f in dataclasses.fields(record)
    }


def _nested_dataclass(tp: Any):
    """Returns the dataclass wrapped by tp (directly, in Optional or List)."""
    if dataclasses.is_dataclass(tp):
        return tp, False
    origin = typing.get_origin(tp)
    args = [a for a in typing.get_args(tp) if a is not type(None)]
    if origin in (list, typing.List) and args and dataclasses.is_dataclass(args[0]):
        return args[0], True
    if origin is typing.Union and len(args) == 1:
        return _nested_dataclass(args[0])
    return None, False


def _snake_fields(data_class: Type, data: dict) -> dict:
    hints = typing.get_type_hints(data_class)
    result = {}
    for f in dataclasses.fields(data_class):
        camel = snake_to_camel(f.name)
        if camel in data:
            value = data[camel]
        elif f.name in data:
            value = data[f.name]
        else:
            continue
        nested, is_list = _nested_dataclass(hints.get(f.name))
        if nested is not None and value is not None:
            if is_list:
                value = [_snake_fields(nested, item) for item in value]
            else:
                value = _snake_fields(nested, value)
        result[f.name] = value
    return result


def from_document(data_class: Type[T], data: dict) -> T:
    """Decodes a camelCase Firestore document into a dataclass record."""
    return from_dict(
        data_class=data_class,
        data=_snake_fields(data_class, data),
        config=DOCUMENT_CONFIG,
    )


def to_json_ready(value: Any) -> Any:
    """Encodes records for callable responses (datetimes as ISO strings)."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = to_document(value)
    if isinstance(value, dict):
        return {k: to_json_ready(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_json_ready(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
