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

"""Schema definitions and enums for DynamoDB table schemas.

This module defines the valid values accepted in a table description and the
immutable model produced once a description has been validated. Everything in
the model is frozen: a ``TableSchema`` is built once per load and then shared
by the planner, the builders and any code emitter.
"""

import difflib
from dataclasses import dataclass, field
from dynamo_schema_planner.core.validation_utils import ValidationError
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class DynamoDBType(Enum):
    """DynamoDB native attribute types."""

    STRING = 'S'
    NUMBER = 'N'
    BINARY = 'B'
    STRING_SET = 'SS'
    NUMBER_SET = 'NS'
    BINARY_SET = 'BS'
    MAP = 'M'
    LIST = 'L'
    NULL = 'NULL'
    BOOLEAN = 'BOOL'


class AttributeSubtype(Enum):
    """Representation hints for an attribute's native value."""

    STRING = 'string'
    INT = 'int'
    INT8 = 'int8'
    INT16 = 'int16'
    INT32 = 'int32'
    INT64 = 'int64'
    UINT = 'uint'
    UINT8 = 'uint8'
    UINT16 = 'uint16'
    UINT32 = 'uint32'
    UINT64 = 'uint64'
    FLOAT32 = 'float32'
    FLOAT64 = 'float64'
    DECIMAL = 'decimal'
    BOOL = 'bool'

    @property
    def is_integer(self) -> bool:
        """Whether the subtype is an integral number."""
        return self.value.startswith(('int', 'uint'))

    @property
    def is_float(self) -> bool:
        """Whether the subtype is a floating point number."""
        return self.value.startswith('float')


class IndexType(Enum):
    """Secondary index kinds."""

    GSI = 'GSI'
    LSI = 'LSI'


class ProjectionType(Enum):
    """Valid secondary index projection types."""

    ALL = 'ALL'
    KEYS_ONLY = 'KEYS_ONLY'
    INCLUDE = 'INCLUDE'


class OperatorType(Enum):
    """Comparison operators a predicate can use."""

    EQ = 'EQ'
    NE = 'NE'
    GT = 'GT'
    LT = 'LT'
    GTE = 'GTE'
    LTE = 'LTE'
    BETWEEN = 'BETWEEN'
    CONTAINS = 'CONTAINS'
    NOT_CONTAINS = 'NOT_CONTAINS'
    BEGINS_WITH = 'BEGINS_WITH'
    IN = 'IN'
    NOT_IN = 'NOT_IN'
    EXISTS = 'EXISTS'
    NOT_EXISTS = 'NOT_EXISTS'

    @classmethod
    def from_string(cls, value: 'str | OperatorType') -> 'OperatorType':
        """Resolve an operator from its name (any case) or its comparison symbol.

        Raises:
            ValueError: If the value names no operator
        """
        if isinstance(value, OperatorType):
            return value
        text = value.strip()
        if text in _OPERATOR_SYMBOLS:
            return _OPERATOR_SYMBOLS[text]
        try:
            return cls(text.upper())
        except ValueError:
            suggestion = suggest_enum_value(text.upper(), cls)
            raise ValueError(f"Unknown operator '{value}'. {suggestion}") from None


_OPERATOR_SYMBOLS = {
    '=': OperatorType.EQ,
    '<>': OperatorType.NE,
    '!=': OperatorType.NE,
    '>': OperatorType.GT,
    '<': OperatorType.LT,
    '>=': OperatorType.GTE,
    '<=': OperatorType.LTE,
}

# https://docs.aws.amazon.com/amazondynamodb/latest/developerguide/ServiceQuotas.html
MAX_GSIS_PER_TABLE = 20
MAX_LSIS_PER_TABLE = 5

NUMERIC_SUBTYPES = frozenset(
    subtype for subtype in AttributeSubtype if subtype.is_integer or subtype.is_float
) | {AttributeSubtype.DECIMAL}

# Subtypes each wire type may declare; types not listed accept none
SUBTYPE_COMPATIBILITY: Mapping[DynamoDBType, frozenset[AttributeSubtype]] = MappingProxyType(
    {
        DynamoDBType.STRING: frozenset({AttributeSubtype.STRING}),
        DynamoDBType.STRING_SET: frozenset({AttributeSubtype.STRING}),
        DynamoDBType.NUMBER: NUMERIC_SUBTYPES,
        DynamoDBType.NUMBER_SET: NUMERIC_SUBTYPES,
        DynamoDBType.BOOLEAN: frozenset({AttributeSubtype.BOOL}),
    }
)

# Table and simple index keys must be scalar
KEY_ATTRIBUTE_TYPES = frozenset({DynamoDBType.STRING, DynamoDBType.NUMBER, DynamoDBType.BINARY})

# Composite parts are stringified into one string key
COMPOSITE_PART_TYPES = frozenset({DynamoDBType.STRING, DynamoDBType.NUMBER, DynamoDBType.BOOLEAN})

_PYTHON_TYPES = {
    DynamoDBType.STRING: 'str',
    DynamoDBType.NUMBER: 'Decimal',
    DynamoDBType.BINARY: 'bytes',
    DynamoDBType.BOOLEAN: 'bool',
    DynamoDBType.STRING_SET: 'set[str]',
    DynamoDBType.NUMBER_SET: 'set[Decimal]',
    DynamoDBType.BINARY_SET: 'set[bytes]',
    DynamoDBType.LIST: 'list[Any]',
    DynamoDBType.MAP: 'dict[str, Any]',
    DynamoDBType.NULL: 'None',
}


@dataclass(frozen=True)
class Attribute:
    """One declared table attribute."""

    name: str
    type: DynamoDBType
    subtype: AttributeSubtype | None = None
    identifier: str = ''  # sanitized name for generated code

    @property
    def python_type(self) -> str:
        """Python annotation an emitter should use for this attribute."""
        if self.subtype is not None:
            number = 'int' if self.subtype.is_integer else 'float' if self.subtype.is_float else ''
            if number and self.type == DynamoDBType.NUMBER:
                return number
            if number and self.type == DynamoDBType.NUMBER_SET:
                return f'set[{number}]'
        return _PYTHON_TYPES[self.type]


@dataclass(frozen=True)
class CompositeKeyPart:
    """One segment of a composite key: a literal or a reference to an attribute."""

    value: str
    is_constant: bool = False

    def __str__(self) -> str:
        """Render in the ``const:``/``var:`` notation used in descriptions."""
        return f'const:{self.value}' if self.is_constant else f'var:{self.value}'


@dataclass(frozen=True)
class SecondaryIndex:
    """A validated secondary index declaration.

    ``hash_key`` and ``range_key`` always hold the physical attribute name. For a
    composite key that name is the part values joined by the separator and the
    parts themselves are kept in ``hash_key_parts`` / ``range_key_parts``.
    """

    name: str
    hash_key: str
    range_key: str | None = None
    index_type: IndexType = IndexType.GSI
    hash_key_parts: tuple[CompositeKeyPart, ...] = ()
    range_key_parts: tuple[CompositeKeyPart, ...] = ()
    projection_type: ProjectionType = ProjectionType.ALL
    non_key_attributes: tuple[str, ...] = ()
    read_capacity: int | None = None
    write_capacity: int | None = None
    identifier: str = ''

    @property
    def is_global(self) -> bool:
        return self.index_type == IndexType.GSI

    @property
    def is_local(self) -> bool:
        return self.index_type == IndexType.LSI

    @property
    def has_composite_hash_key(self) -> bool:
        return bool(self.hash_key_parts)

    @property
    def has_composite_range_key(self) -> bool:
        return bool(self.range_key_parts)

    def key_attribute_names(self) -> tuple[str, ...]:
        """Names of the declared attributes this index's keys are built from."""
        names: list[str] = []
        keys = ((self.hash_key, self.hash_key_parts), (self.range_key, self.range_key_parts))
        for key, parts in keys:
            if parts:
                names.extend(part.value for part in parts if not part.is_constant)
            elif key:
                names.append(key)
        return tuple(names)


@dataclass(frozen=True)
class FieldInfo:
    """Per-attribute metadata derived once at load time."""

    name: str
    dynamo_type: DynamoDBType
    allowed_operators: frozenset[OperatorType]
    is_key: bool = False
    is_hash_key: bool = False
    is_range_key: bool = False
    is_index_key: bool = False
    subtype: AttributeSubtype | None = None
    identifier: str = ''


@dataclass(frozen=True)
class TableSchema:
    """Whole, validated table definition."""

    table_name: str
    hash_key: str
    attributes: tuple[Attribute, ...]
    range_key: str | None = None
    common_attributes: tuple[Attribute, ...] = ()
    secondary_indexes: tuple[SecondaryIndex, ...] = ()
    # Derived from attributes; excluded from the hash
    fields_map: Mapping[str, FieldInfo] = field(
        default_factory=lambda: MappingProxyType({}), hash=False
    )
    identifier: str = ''

    @property
    def all_attributes(self) -> tuple[Attribute, ...]:
        """Declared attributes followed by common attributes."""
        return self.attributes + self.common_attributes

    @property
    def module_name(self) -> str:
        """Module name an emitter should use for this table."""
        return self.identifier

    @property
    def class_name(self) -> str:
        """Class name an emitter should use for this table."""
        return ''.join(word.capitalize() for word in self.identifier.split('_') if word)

    @property
    def global_indexes(self) -> tuple[SecondaryIndex, ...]:
        return tuple(index for index in self.secondary_indexes if index.is_global)

    @property
    def local_indexes(self) -> tuple[SecondaryIndex, ...]:
        return tuple(index for index in self.secondary_indexes if index.is_local)

    def get_attribute(self, name: str) -> Attribute | None:
        """Look up a declared or common attribute by name."""
        for attribute in self.all_attributes:
            if attribute.name == name:
                return attribute
        return None

    def get_index(self, name: str) -> SecondaryIndex | None:
        """Look up a secondary index by name."""
        for index in self.secondary_indexes:
            if index.name == name:
                return index
        return None

    def key_names(self) -> tuple[str, ...]:
        """Primary key attribute names of the base table."""
        return (self.hash_key, self.range_key) if self.range_key else (self.hash_key,)


# Validation utilities
def get_enum_values(enum_class) -> list[str]:
    """Get list of valid string values from enum."""
    return [item.value for item in enum_class]


def is_valid_enum_value(value: str, enum_class) -> bool:
    """Check if value is valid for given enum."""
    return value in get_enum_values(enum_class)


def suggest_enum_value(invalid_value: str, enum_class) -> str:
    """Suggest the closest valid enum value for an invalid input."""
    valid_values = get_enum_values(enum_class)

    if not invalid_value:
        return f'Valid options: {", ".join(valid_values)}'

    matches = difflib.get_close_matches(invalid_value, valid_values, n=1, cutoff=0.5)
    if not matches:
        # Fall back to a case-insensitive match
        matches = [v for v in valid_values if v.lower() == invalid_value.lower()]
    if matches:
        return f"Did you mean '{matches[0]}'? Valid options: {', '.join(valid_values)}"

    return f'Valid options: {", ".join(valid_values)}'


def validate_enum_field(
    value: Any, enum_class: type, path: str, field_name: str
) -> list[ValidationError]:
    """Validate that a field value matches an enum."""
    errors = []

    if not isinstance(value, str):
        errors.append(
            ValidationError(
                path=f'{path}.{field_name}',
                message=f"Field '{field_name}' must be a string, got {type(value).__name__}",
                suggestion=f'Change {field_name} to a string value',
            )
        )
        return errors

    if not is_valid_enum_value(value, enum_class):
        errors.append(
            ValidationError(
                path=f'{path}.{field_name}',
                message=f"Invalid {field_name} value '{value}'",
                suggestion=suggest_enum_value(value, enum_class),
            )
        )

    return errors
