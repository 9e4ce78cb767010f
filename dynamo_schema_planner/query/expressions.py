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

"""Rendering of planned conditions into DynamoDB expression strings.

Conditions are built as boto3 ``Key`` / ``Attr`` conditions, joined with
``&`` and rendered by one ``ConditionExpressionBuilder`` per request, so
placeholders (``#n0``, ``:v0``, ...) are assigned in rendering order and the
same plan always renders to the same request. Values are encoded with the
codec before they are handed to boto3, so the placeholder map already holds
low-level attribute values.
"""

from boto3.dynamodb.conditions import ConditionBase, ConditionExpressionBuilder
from dataclasses import dataclass
from dynamo_schema_planner.core.index_selector import (
    FilterCondition,
    KeyCondition,
    OperationType,
    QueryPlan,
)
from dynamo_schema_planner.core.operators import build_condition
from dynamo_schema_planner.core.schema_definitions import OperatorType
from dynamo_schema_planner.core.value_codec import (
    BotoValueCodec,
    PredicateValue,
    ValueCodec,
    encode_attribute,
)
from functools import reduce
from operator import and_
from typing import Any, Iterable, Sequence


@dataclass(frozen=True)
class BuiltRequest:
    """A rendered request ready for a low-level boto3 DynamoDB client."""

    operation: OperationType
    params: dict[str, Any]
    plan: QueryPlan

    @property
    def client_method(self) -> str:
        """Name of the boto3 client method to call (``query`` or ``scan``)."""
        return self.operation.value.lower()


class ExpressionRenderer:
    """Renders conditions and collects their placeholder maps."""

    def __init__(self, codec: ValueCodec | None = None):
        """Initialize the renderer.

        Args:
            codec: Codec used to encode condition values
        """
        self.codec = codec or BotoValueCodec()
        self.attribute_names: dict[str, str] = {}
        self.attribute_values: dict[str, dict[str, Any]] = {}
        self._builder = ConditionExpressionBuilder()

    def condition(
        self,
        attribute: str,
        operator: OperatorType,
        values: Sequence[PredicateValue],
        key: bool = False,
    ) -> ConditionBase:
        """Build one condition over encoded values.

        Raises:
            ValueEncodingError: If the codec rejects a value
        """
        encoded = [encode_attribute(self.codec, attribute, value) for value in values]
        return build_condition(attribute, operator, encoded, key=key)

    def render(self, condition: ConditionBase, is_key_condition: bool = False) -> str:
        """Render a condition and record its placeholders."""
        built = self._builder.build_expression(condition, is_key_condition=is_key_condition)
        self.attribute_names.update(built.attribute_name_placeholders)
        self.attribute_values.update(built.attribute_value_placeholders)
        return built.condition_expression

    def key_condition(self, key_condition: KeyCondition) -> str:
        conditions = [
            self.condition(part.attribute, part.operator, part.values, key=True)
            for part in key_condition.parts
        ]
        return self.render(reduce(and_, conditions), is_key_condition=True)

    def filter_expression(self, filters: Sequence[FilterCondition]) -> str | None:
        if not filters:
            return None
        conditions = [self.condition(f.attribute, f.operator, f.values) for f in filters]
        return self.render(reduce(and_, conditions))

    def projection(self, attributes: Iterable[str]) -> str:
        """Render a ``ProjectionExpression``; names get ``#p`` placeholders."""
        placeholders: dict[str, str] = {}
        for attribute in attributes:
            placeholders.setdefault(attribute, f'#p{len(placeholders)}')
        self.attribute_names.update({p: attribute for attribute, p in placeholders.items()})
        return ', '.join(placeholders.values())

    def placeholder_maps(self) -> dict[str, Any]:
        """``ExpressionAttributeNames`` / ``ExpressionAttributeValues`` for the request."""
        maps: dict[str, Any] = {}
        if self.attribute_names:
            maps['ExpressionAttributeNames'] = dict(self.attribute_names)
        if self.attribute_values:
            maps['ExpressionAttributeValues'] = dict(self.attribute_values)
        return maps
