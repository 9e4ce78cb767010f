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

"""Value codec: native values to and from the DynamoDB wire format.

Predicate values are classified exactly once, when they enter the API, into a
``PredicateValue`` (kind + payload). The planner, the composite key resolver
and the codec dispatch on that kind instead of inspecting Python types again.
"""

import math
from boto3.dynamodb.types import Binary, TypeDeserializer, TypeSerializer
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, DecimalException
from dynamo_schema_planner.core.validation_utils import ValueDecodingError, ValueEncodingError
from enum import Enum
from typing import Any, Protocol


class ValueKind(Enum):
    """Kinds of predicate values; each value is also its wire type tag."""

    STRING = 'S'
    NUMBER = 'N'
    BINARY = 'B'
    BOOLEAN = 'BOOL'
    NULL = 'NULL'
    STRING_SET = 'SS'
    NUMBER_SET = 'NS'
    BINARY_SET = 'BS'
    LIST = 'L'
    MAP = 'M'


_BINARY_TYPES = (bytes, bytearray, Binary)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_bytes(value: Any) -> bytes:
    return value.value if isinstance(value, Binary) else bytes(value)


@dataclass(frozen=True)
class PredicateValue:
    """A native value tagged with its kind.

    LIST and MAP payloads hold nested ``PredicateValue`` instances, so the whole
    structure is classified up front.
    """

    kind: ValueKind
    payload: Any

    @classmethod
    def of(cls, value: Any) -> 'PredicateValue':
        """Classify a native Python value.

        Raises:
            TypeError: If the value has no DynamoDB representation
            ValueError: If a set is empty or mixes element kinds
        """
        if isinstance(value, PredicateValue):
            return value
        if value is None:
            return cls(ValueKind.NULL, None)
        if isinstance(value, bool):
            return cls(ValueKind.BOOLEAN, value)
        if _is_number(value):
            return cls(ValueKind.NUMBER, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        if isinstance(value, _BINARY_TYPES):
            return cls(ValueKind.BINARY, _to_bytes(value))
        if isinstance(value, (set, frozenset)):
            return cls._of_set(value)
        if isinstance(value, Mapping):
            return cls(ValueKind.MAP, {str(k): cls.of(v) for k, v in value.items()})
        if isinstance(value, (list, tuple)):
            return cls(ValueKind.LIST, tuple(cls.of(v) for v in value))
        raise TypeError(f'Unsupported value type: {type(value).__name__}')

    @classmethod
    def _of_set(cls, value: set | frozenset) -> 'PredicateValue':
        if not value:
            raise ValueError('Empty sets are not supported')
        if all(isinstance(v, str) for v in value):
            return cls(ValueKind.STRING_SET, frozenset(value))
        if all(_is_number(v) for v in value):
            return cls(ValueKind.NUMBER_SET, frozenset(value))
        if all(isinstance(v, _BINARY_TYPES) for v in value):
            return cls(ValueKind.BINARY_SET, frozenset(_to_bytes(v) for v in value))
        raise ValueError('Set elements must all be strings, all numbers or all binary')

    @property
    def is_set(self) -> bool:
        return self.kind in (ValueKind.STRING_SET, ValueKind.NUMBER_SET, ValueKind.BINARY_SET)

    def to_native(self) -> Any:
        """Return the plain Python value this wraps."""
        if self.kind == ValueKind.LIST:
            return [item.to_native() for item in self.payload]
        if self.kind == ValueKind.MAP:
            return {key: item.to_native() for key, item in self.payload.items()}
        if self.is_set:
            return set(self.payload)
        return self.payload

    def __str__(self) -> str:
        return str(self.to_native())


def to_decimal(number: Any) -> Decimal:
    """Convert a native number to the ``Decimal`` boto3 serializes.

    Floats go through their string form, so ``0.1`` stays ``0.1``.

    Raises:
        ValueError: For NaN or Infinity
    """
    if isinstance(number, float):
        if math.isnan(number) or math.isinf(number):
            raise ValueError('Infinity and NaN not supported')
        return Decimal(f'{number}')
    decimal = number if isinstance(number, Decimal) else Decimal(number)
    if not decimal.is_finite():
        raise ValueError('Infinity and NaN not supported')
    return decimal


_SERIALIZER = TypeSerializer()


def format_number(number: Any) -> str:
    """Format a number the way DynamoDB stores it.

    Raises:
        ValueError: For NaN, Infinity or numbers outside DynamoDB's precision
    """
    try:
        return _SERIALIZER.serialize(to_decimal(number))['N']
    except DecimalException as e:
        raise ValueError(f'Number {number} cannot be stored without losing precision') from e


def _to_serializable(value: PredicateValue) -> Any:
    kind = value.kind
    if kind == ValueKind.NUMBER:
        return to_decimal(value.payload)
    if kind == ValueKind.NUMBER_SET:
        return {to_decimal(n) for n in value.payload}
    if kind == ValueKind.LIST:
        return [_to_serializable(item) for item in value.payload]
    if kind == ValueKind.MAP:
        return {key: _to_serializable(item) for key, item in value.payload.items()}
    return value.to_native()


def _sort_sets(wire_value: dict[str, Any]) -> dict[str, Any]:
    tag, payload = next(iter(wire_value.items()))
    if tag == 'NS':
        return {tag: sorted(payload, key=Decimal)}
    if tag in ('SS', 'BS'):
        return {tag: sorted(payload)}
    if tag == 'L':
        return {tag: [_sort_sets(item) for item in payload]}
    if tag == 'M':
        return {tag: {key: _sort_sets(item) for key, item in payload.items()}}
    return wire_value


class ValueCodec(Protocol):
    """Encodes predicate values to wire attributes and decodes them back.

    ``encode`` raises ``ValueError`` when a value cannot be represented;
    ``decode`` raises ``ValueDecodingError``.
    """

    def encode(self, value: PredicateValue) -> dict[str, Any]: ...

    def decode(self, wire_value: Mapping[str, Any]) -> Any: ...


class BotoValueCodec:
    """Codec producing low-level boto3 attribute values (``{'S': 'x'}``)."""

    def __init__(self):
        """Initialize the codec."""
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def encode(self, value: PredicateValue) -> dict[str, Any]:
        """Encode a classified value.

        Set members come out sorted so the same value always encodes the same way.

        Raises:
            ValueError: If the value cannot be represented on the wire
        """
        try:
            wire_value = self._serializer.serialize(_to_serializable(value))
        except TypeError as e:
            raise ValueError(str(e)) from e
        except DecimalException as e:
            raise ValueError(f'Number {value} cannot be stored without losing precision') from e
        return _sort_sets(wire_value)

    def encode_native(self, value: Any) -> dict[str, Any]:
        """Classify and encode a plain Python value."""
        return self.encode(PredicateValue.of(value))

    def decode(self, wire_value: Mapping[str, Any]) -> Any:
        """Decode a wire attribute value.

        Numbers decode to ``Decimal`` and binary values to ``bytes``.

        Raises:
            ValueDecodingError: If the wire value is malformed
        """
        if not isinstance(wire_value, Mapping) or len(wire_value) != 1:
            raise ValueDecodingError(f'Malformed attribute value: {wire_value!r}')
        try:
            decoded = self._deserializer.deserialize(dict(wire_value))
        except (TypeError, ValueError, KeyError, AttributeError, DecimalException) as e:
            raise ValueDecodingError(f'Cannot decode attribute value {wire_value!r}: {e}') from e
        if isinstance(decoded, Decimal) and not decoded.is_finite():
            raise ValueDecodingError(f'Invalid number in attribute value {wire_value!r}')
        return self._unwrap_binary(decoded)

    def _unwrap_binary(self, value: Any) -> Any:
        if isinstance(value, Binary):
            return value.value
        if isinstance(value, (set, frozenset)):
            return {self._unwrap_binary(v) for v in value}
        if isinstance(value, list):
            return [self._unwrap_binary(v) for v in value]
        if isinstance(value, dict):
            return {k: self._unwrap_binary(v) for k, v in value.items()}
        return value


def encode_attribute(codec: ValueCodec, attribute: str, value: Any) -> dict[str, Any]:
    """Encode ``value`` for ``attribute``, naming the attribute on failure.

    Raises:
        ValueEncodingError: If the value cannot be classified or encoded
    """
    try:
        return codec.encode(PredicateValue.of(value))
    except (TypeError, ValueError) as e:
        raise ValueEncodingError(attribute, str(e)) from e
