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

"""Marshaling helpers between native items and the DynamoDB wire format.

Record extraction never raises for a bad field. A value that cannot be decoded,
whose wire type does not match the declared type, or that does not fit the
declared subtype is left out of the record and reported in
``ExtractionResult.discarded_fields``.

Atomic updates (counters and set membership) render as single-clause ``ADD`` or
``DELETE`` expressions; stream records are decoded image by image.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from dynamo_schema_planner.core.composite_key import CompositeKeyResolver
from dynamo_schema_planner.core.keys import index_key_values
from dynamo_schema_planner.core.schema_definitions import (
    AttributeSubtype,
    DynamoDBType,
    FieldInfo,
    TableSchema,
)
from dynamo_schema_planner.core.validation_utils import KeyBuildError, ValueDecodingError
from dynamo_schema_planner.core.value_codec import BotoValueCodec, ValueCodec, encode_attribute
from loguru import logger
from typing import Any, Iterable, Mapping


_INTEGER_BOUNDS = {
    AttributeSubtype.INT: (-(2**63), 2**63 - 1),
    AttributeSubtype.INT8: (-(2**7), 2**7 - 1),
    AttributeSubtype.INT16: (-(2**15), 2**15 - 1),
    AttributeSubtype.INT32: (-(2**31), 2**31 - 1),
    AttributeSubtype.INT64: (-(2**63), 2**63 - 1),
    AttributeSubtype.UINT: (0, 2**64 - 1),
    AttributeSubtype.UINT8: (0, 2**8 - 1),
    AttributeSubtype.UINT16: (0, 2**16 - 1),
    AttributeSubtype.UINT32: (0, 2**32 - 1),
    AttributeSubtype.UINT64: (0, 2**64 - 1),
}


@dataclass(frozen=True)
class DiscardedField:
    """A field left out of an extracted record."""

    name: str
    reason: str


@dataclass
class ExtractionResult:
    """Native record plus the fields that could not be converted."""

    values: dict[str, Any] = field(default_factory=dict)
    discarded_fields: list[DiscardedField] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.discarded_fields

    def discarded_names(self) -> list[str]:
        return [discarded.name for discarded in self.discarded_fields]


@dataclass(frozen=True)
class UpdateExpression:
    """Rendered UpdateItem expression with its placeholder maps."""

    expression: str
    attribute_names: dict[str, str]
    attribute_values: dict[str, dict[str, Any]]

    def to_request(self) -> dict[str, Any]:
        """Keyword arguments for a low-level ``update_item`` call."""
        request: dict[str, Any] = {
            'UpdateExpression': self.expression,
            'ExpressionAttributeNames': self.attribute_names,
        }
        if self.attribute_values:
            request['ExpressionAttributeValues'] = self.attribute_values
        return request


def marshal_item(
    schema: TableSchema,
    item: Mapping[str, Any],
    codec: ValueCodec | None = None,
    resolver: CompositeKeyResolver | None = None,
) -> dict[str, dict[str, Any]]:
    """Encode a native item for PutItem, adding composite index key attributes.

    None values are omitted.

    Raises:
        KeyBuildError: If a table key attribute is missing
        ValueEncodingError: If a value cannot be encoded
        CompositeKeyError: If a composite index key cannot be built
    """
    codec = codec or BotoValueCodec()
    for key_name in schema.key_names():
        if item.get(key_name) is None:
            raise KeyBuildError(f"Item is missing key attribute '{key_name}'")

    wire_item = {
        name: encode_attribute(codec, name, value)
        for name, value in item.items()
        if value is not None
    }
    for name, value in index_key_values(schema, item, resolver).items():
        wire_item.setdefault(name, {'S': value})
    return wire_item


def extract_non_key_attributes(schema: TableSchema, item: Mapping[str, Any]) -> dict[str, Any]:
    """Return the item without its primary key attributes."""
    key_names = set(schema.key_names())
    return {name: value for name, value in item.items() if name not in key_names}


def build_update_expression(
    schema: TableSchema,
    updates: Mapping[str, Any],
    codec: ValueCodec | None = None,
) -> UpdateExpression:
    """Build an UpdateItem expression that sets (or, for None, removes) attributes.

    Attributes keep the order of ``updates``; placeholders are ``#attr<n>`` and
    ``:val<n>``.

    Raises:
        ValueError: If there is nothing to update or a primary key attribute is included
        ValueEncodingError: If a value cannot be encoded
    """
    if not updates:
        raise ValueError('No attributes to update')
    key_names = set(schema.key_names())
    touched_keys = [name for name in updates if name in key_names]
    if touched_keys:
        raise ValueError(f'Primary key attributes cannot be updated: {", ".join(touched_keys)}')

    codec = codec or BotoValueCodec()
    names: dict[str, str] = {}
    values: dict[str, dict[str, Any]] = {}
    set_clauses = []
    remove_clauses = []
    for i, (name, value) in enumerate(updates.items()):
        name_placeholder = f'#attr{i}'
        names[name_placeholder] = name
        if value is None:
            remove_clauses.append(name_placeholder)
            continue
        value_placeholder = f':val{i}'
        values[value_placeholder] = encode_attribute(codec, name, value)
        set_clauses.append(f'{name_placeholder} = {value_placeholder}')

    clauses = []
    if set_clauses:
        clauses.append('SET ' + ', '.join(set_clauses))
    if remove_clauses:
        clauses.append('REMOVE ' + ', '.join(remove_clauses))
    return UpdateExpression(' '.join(clauses), names, values)


def _single_attribute_update(
    schema: TableSchema, action: str, attribute: str, wire_value: dict[str, Any]
) -> UpdateExpression:
    if not attribute:
        raise ValueError('Attribute name cannot be empty')
    if attribute in schema.key_names():
        raise ValueError(f'Primary key attributes cannot be updated: {attribute}')
    return UpdateExpression(
        f'{action} #attr0 :val0', {'#attr0': attribute}, {':val0': wire_value}
    )


def build_increment_expression(
    schema: TableSchema,
    attribute: str,
    amount: int | float | Decimal = 1,
    codec: ValueCodec | None = None,
) -> UpdateExpression:
    """Build an ``ADD`` expression that atomically adds ``amount`` to a number attribute.

    A negative amount decrements. An attribute that does not exist yet starts at 0.

    Raises:
        ValueError: If the amount is not a number, the attribute is a primary key
            attribute or is declared with a non-number type
        ValueEncodingError: If the amount cannot be encoded
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise ValueError(f'Increment amount must be a number, got {type(amount).__name__}')
    info = schema.fields_map.get(attribute)
    if info is not None and info.dynamo_type != DynamoDBType.NUMBER:
        raise ValueError(
            f"Cannot increment attribute '{attribute}' of type {info.dynamo_type.value}"
        )
    codec = codec or BotoValueCodec()
    return _single_attribute_update(
        schema, 'ADD', attribute, encode_attribute(codec, attribute, amount)
    )


def _set_update(
    schema: TableSchema,
    action: str,
    attribute: str,
    values: Iterable[Any],
    codec: ValueCodec | None,
) -> UpdateExpression:
    if isinstance(values, (str, bytes, Mapping)):
        raise ValueError(f"Set values for '{attribute}' must be a set or list")
    members = set(values)
    if not members:
        raise ValueError(f"Set values for '{attribute}' cannot be empty")
    codec = codec or BotoValueCodec()
    wire_value = encode_attribute(codec, attribute, members)
    wire_type = next(iter(wire_value))
    info = schema.fields_map.get(attribute)
    if info is not None and info.dynamo_type.value != wire_type:
        raise ValueError(
            f"Attribute '{attribute}' is declared as {info.dynamo_type.value}, "
            f'values encode as {wire_type}'
        )
    return _single_attribute_update(schema, action, attribute, wire_value)


def build_add_to_set(
    schema: TableSchema,
    attribute: str,
    values: Iterable[Any],
    codec: ValueCodec | None = None,
) -> UpdateExpression:
    """Build an ``ADD`` expression that adds members to a string, number or binary set.

    Raises:
        ValueError: If ``values`` is empty or not a collection, the attribute is a
            primary key attribute, or the values do not match the declared set type
        ValueEncodingError: If the values cannot be encoded as one set
    """
    return _set_update(schema, 'ADD', attribute, values, codec)


def build_remove_from_set(
    schema: TableSchema,
    attribute: str,
    values: Iterable[Any],
    codec: ValueCodec | None = None,
) -> UpdateExpression:
    """Build a ``DELETE`` expression that removes members from a set attribute."""
    return _set_update(schema, 'DELETE', attribute, values, codec)


def _coerce_number(number: Decimal, subtype: AttributeSubtype | None) -> tuple[Any, str | None]:
    if subtype is None or subtype == AttributeSubtype.DECIMAL:
        return number, None
    if subtype.is_float:
        return float(number), None
    if number != number.to_integral_value():
        return None, f'{number} is not an integer'
    integer = int(number)
    low, high = _INTEGER_BOUNDS[subtype]
    if not low <= integer <= high:
        return None, f'{integer} is out of range for {subtype.value}'
    return integer, None


def _coerce(info: FieldInfo, value: Any) -> tuple[Any, str | None]:
    if info.dynamo_type == DynamoDBType.NUMBER:
        return _coerce_number(value, info.subtype)
    if info.dynamo_type == DynamoDBType.NUMBER_SET:
        converted = set()
        for number in value:
            element, reason = _coerce_number(number, info.subtype)
            if reason is not None:
                return None, reason
            converted.add(element)
        return converted, None
    return value, None


def extract_record(
    schema: TableSchema,
    wire_item: Mapping[str, Mapping[str, Any]],
    codec: ValueCodec | None = None,
) -> ExtractionResult:
    """Decode a wire item into a native record.

    Declared attributes are checked against their declared type and converted
    according to their subtype; undeclared attributes are decoded as-is.

    Args:
        schema: Validated table schema
        wire_item: Item as returned by a low-level DynamoDB call
        codec: Value codec; defaults to ``BotoValueCodec``

    Returns:
        ExtractionResult with the decoded values and the discarded fields
    """
    codec = codec or BotoValueCodec()
    result = ExtractionResult()
    for name, wire_value in wire_item.items():
        try:
            value = codec.decode(wire_value)
        except ValueDecodingError as e:
            result.discarded_fields.append(DiscardedField(name, str(e)))
            continue

        info = schema.fields_map.get(name)
        if info is None:
            result.values[name] = value
            continue

        wire_type = next(iter(wire_value))
        if wire_type != info.dynamo_type.value:
            result.discarded_fields.append(
                DiscardedField(
                    name, f'expected type {info.dynamo_type.value}, found {wire_type}'
                )
            )
            continue

        converted, reason = _coerce(info, value)
        if reason is not None:
            result.discarded_fields.append(DiscardedField(name, reason))
            continue
        result.values[name] = converted

    if result.discarded_fields:
        logger.debug(
            f'Discarded {len(result.discarded_fields)} field(s) while extracting a '
            f'{schema.table_name} record: {", ".join(result.discarded_names())}'
        )
    return result


@dataclass
class StreamRecord:
    """Decoded images of one DynamoDB stream record."""

    event_name: str | None
    new_image: ExtractionResult
    old_image: ExtractionResult | None = None


def _stream_images(record: Mapping[str, Any]) -> Mapping[str, Any]:
    return record.get('dynamodb') or {}


def extract_stream_record(
    schema: TableSchema,
    record: Mapping[str, Any],
    codec: ValueCodec | None = None,
) -> StreamRecord:
    """Decode the images of a stream record as delivered to a Lambda handler.

    Both images go through ``extract_record``, so bad fields are reported in each
    image's ``discarded_fields``.

    Args:
        schema: Validated table schema
        record: One entry of the event's ``Records`` list
        codec: Value codec; defaults to ``BotoValueCodec``

    Raises:
        ValueError: If the record carries no new image
    """
    images = _stream_images(record)
    new_image = images.get('NewImage')
    if new_image is None:
        raise ValueError('Stream record has no new image')
    codec = codec or BotoValueCodec()
    old_image = images.get('OldImage')
    return StreamRecord(
        event_name=record.get('eventName'),
        new_image=extract_record(schema, new_image, codec),
        old_image=extract_record(schema, old_image, codec) if old_image is not None else None,
    )


def is_field_modified(
    record: Mapping[str, Any], field_name: str, codec: ValueCodec | None = None
) -> bool:
    """Whether a MODIFY stream record changed ``field_name``.

    The field has to be present in both images; adding or removing it does not count.
    """
    if record.get('eventName') != 'MODIFY':
        return False
    images = _stream_images(record)
    new_image = images.get('NewImage')
    old_image = images.get('OldImage')
    if new_image is None or old_image is None:
        return False
    if field_name not in new_image or field_name not in old_image:
        return False
    codec = codec or BotoValueCodec()
    return codec.decode(old_image[field_name]) != codec.decode(new_image[field_name])
