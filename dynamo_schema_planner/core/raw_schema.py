# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
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

"""Pydantic models for the raw table description.

These models only check the shape of the input (required fields, value types,
non-empty lists). Semantic checks such as type names, key references and index
rules run afterwards in ``schema_validator``.
"""

from dynamo_schema_planner.core.validation_utils import ValidationError
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.types import StringConstraints
from typing import Annotated, Any, Mapping


NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RawKeyPart(BaseModel):
    """One entry of a ``hash_key_parts`` / ``range_key_parts`` list."""

    value: str
    is_constant: bool = False


class RawAttribute(BaseModel):
    """Attribute as written in the description."""

    name: str
    type: str
    subtype: str | None = None

    @field_validator('subtype', mode='before')
    @classmethod
    def _blank_subtype(cls, v: Any) -> Any:
        return _blank_to_none(v)


class RawSecondaryIndex(BaseModel):
    """Secondary index as written in the description."""

    name: str
    type: str = 'GSI'
    hash_key: str | None = None
    hash_key_parts: list[RawKeyPart] | None = None
    range_key: str | None = None
    range_key_parts: list[RawKeyPart] | None = None
    projection_type: str = 'ALL'
    non_key_attributes: list[str] | None = None
    read_capacity: int | None = None
    write_capacity: int | None = None

    @field_validator('hash_key', 'range_key', mode='before')
    @classmethod
    def _blank_key(cls, v: Any) -> Any:
        return _blank_to_none(v)


class RawTableSchema(BaseModel):
    """Whole table description as written."""

    table_name: NonEmptyStr
    hash_key: NonEmptyStr
    range_key: str | None = None
    attributes: Annotated[list[RawAttribute], Field(min_length=1)]
    common_attributes: list[RawAttribute] = Field(default_factory=list)
    secondary_indexes: list[RawSecondaryIndex] = Field(default_factory=list)

    @field_validator('range_key', mode='before')
    @classmethod
    def _blank_range_key(cls, v: Any) -> Any:
        return _blank_to_none(v)


_ERROR_MESSAGE_MAP = {
    'missing': 'is required',
    'string_too_short': 'cannot be empty',
    'too_short': 'must have at least {min_length} item(s)',
    'string_type': 'must be a string',
    'list_type': 'must be a list',
    'int_type': 'must be an integer',
    'int_parsing': 'must be an integer',
    'bool_type': 'must be a boolean',
    'bool_parsing': 'must be a boolean',
    'model_type': 'must be an object',
    'dict_type': 'must be an object',
}

_SUGGESTION_MAP = {
    'missing': "Add the '{field_name}' field",
    'string_too_short': "Provide a non-empty value for '{field_name}'",
    'too_short': "Declare at least one entry in '{field_name}'",
}


def _format_location(loc: tuple) -> str:
    """Format Pydantic location tuple as readable path.

    Example: ('secondary_indexes', 0, 'hash_key') -> 'secondary_indexes[0].hash_key'
    """
    parts = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f'[{item}]')
        else:
            if parts:
                parts.append('.')
            parts.append(str(item))
    return ''.join(parts)


def _customize_error(error: Mapping[str, Any]) -> ValidationError:
    """Convert one Pydantic error into a ValidationError."""
    error_type = error.get('type', '')
    ctx = error.get('ctx') or {}
    loc = error.get('loc', ())
    field_name = next((str(item) for item in reversed(loc) if isinstance(item, str)), 'schema')

    template = _ERROR_MESSAGE_MAP.get(error_type)
    if template:
        message = template.format(**ctx) if ctx else template
    else:
        message = error.get('msg', '')
        if message.startswith('Value error, '):
            message = message[len('Value error, ') :]

    suggestion = _SUGGESTION_MAP.get(error_type, '').format(field_name=field_name)
    return ValidationError(
        path=_format_location(loc) or 'schema', message=message, suggestion=suggestion
    )


def parse_raw_schema(raw: Any) -> tuple[RawTableSchema | None, list[ValidationError]]:
    """Parse a raw description into ``RawTableSchema``.

    Args:
        raw: Decoded JSON description

    Returns:
        The parsed model (None on failure) and the structural errors found
    """
    if not isinstance(raw, Mapping):
        return None, [
            ValidationError(
                path='schema',
                message=f'Schema must be a JSON object, got {type(raw).__name__}',
                suggestion='Wrap the table definition in a JSON object',
            )
        ]
    try:
        return RawTableSchema.model_validate(dict(raw)), []
    except PydanticValidationError as e:
        return None, [_customize_error(error) for error in e.errors()]
