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

"""Primary key and index key builders for the write and read paths."""

from dynamo_schema_planner.core.composite_key import CompositeKeyResolver
from dynamo_schema_planner.core.schema_definitions import TableSchema
from dynamo_schema_planner.core.validation_utils import KeyBuildError
from dynamo_schema_planner.core.value_codec import BotoValueCodec, ValueCodec, encode_attribute
from typing import Any, Mapping


def create_key(
    schema: TableSchema,
    hash_value: Any,
    range_value: Any = None,
    codec: ValueCodec | None = None,
) -> dict[str, dict[str, Any]]:
    """Build the wire-format primary key of an item.

    Args:
        schema: Validated table schema
        hash_value: Value of the table hash key
        range_value: Value of the table range key, when the table has one
        codec: Value codec; defaults to ``BotoValueCodec``

    Returns:
        Mapping of key attribute names to wire values, usable as ``Key`` in
        GetItem, DeleteItem and UpdateItem requests

    Raises:
        KeyBuildError: If a required key value is missing or an unexpected one is given
        ValueEncodingError: If a key value cannot be encoded
    """
    codec = codec or BotoValueCodec()
    if hash_value is None:
        raise KeyBuildError(f"Missing value for hash key '{schema.hash_key}'")

    key = {schema.hash_key: encode_attribute(codec, schema.hash_key, hash_value)}
    if schema.range_key is None:
        if range_value is not None:
            raise KeyBuildError(f'Table {schema.table_name} has no range key')
        return key

    if range_value is None:
        raise KeyBuildError(f"Missing value for range key '{schema.range_key}'")
    key[schema.range_key] = encode_attribute(codec, schema.range_key, range_value)
    return key


def create_key_from_item(
    schema: TableSchema, item: Mapping[str, Any], codec: ValueCodec | None = None
) -> dict[str, dict[str, Any]]:
    """Build the primary key from the key attributes of a native item."""
    return create_key(
        schema,
        item.get(schema.hash_key),
        item.get(schema.range_key) if schema.range_key else None,
        codec,
    )


def index_key_values(
    schema: TableSchema,
    item: Mapping[str, Any],
    resolver: CompositeKeyResolver | None = None,
) -> dict[str, str]:
    """Materialize the composite index key attributes of a native item.

    Indexes whose parts are not all present are skipped, leaving the item out
    of that (sparse) index.

    Returns:
        Physical composite attribute name mapped to its built value

    Raises:
        CompositeKeyError: If a present part value cannot be used in a key
    """
    resolver = resolver or CompositeKeyResolver()
    values = {}
    for index in schema.secondary_indexes:
        for name, parts in (
            (index.hash_key, index.hash_key_parts),
            (index.range_key, index.range_key_parts),
        ):
            if not parts or name in values:
                continue
            variables = resolver.non_constant_parts(parts)
            if all(item.get(part.value) is not None for part in variables):
                values[name] = resolver.build(parts, item)
    return values
