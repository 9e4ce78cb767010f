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

"""Fluent query builder.

The builder accumulates predicates; it does not decide which index to use
until ``plan()`` or ``build()`` is called. A builder instance belongs to one
request and is not safe to share between threads.

Example:
    >>> request = (
    ...     QueryBuilder(schema)
    ...     .with_eq('status', 'active')
    ...     .with_gte('created_at', 1700000000)
    ...     .filter_contains('tags', 'python')
    ...     .order_by_desc()
    ...     .limit(20)
    ...     .build()
    ... )
    >>> getattr(client, request.client_method)(**request.params)
"""

from dynamo_schema_planner.core.composite_key import CompositeKeyResolver
from dynamo_schema_planner.core.index_selector import IndexSelector, Predicate, QueryPlan
from dynamo_schema_planner.core.schema_definitions import (
    CompositeKeyPart,
    OperatorType,
    SecondaryIndex,
    TableSchema,
)
from dynamo_schema_planner.core.value_codec import BotoValueCodec, ValueCodec
from dynamo_schema_planner.query.expressions import BuiltRequest, ExpressionRenderer
from dynamo_schema_planner.query.filters import FilterMethodsMixin
from loguru import logger
from typing import Any, Mapping


class QueryBuilder(FilterMethodsMixin):
    """Accumulates predicates and options for one query."""

    def __init__(
        self,
        schema: TableSchema,
        codec: ValueCodec | None = None,
        selector: IndexSelector | None = None,
    ):
        """Initialize the builder.

        Args:
            schema: Validated table schema
            codec: Codec for condition values; defaults to ``BotoValueCodec``
            selector: Index selector; one is created for ``schema`` when omitted
        """
        self.schema = schema
        self.codec = codec or BotoValueCodec()
        self.selector = selector or IndexSelector(schema)
        self.resolver: CompositeKeyResolver = self.selector.resolver
        self._predicates: list[Predicate] = []
        self._index_name: str | None = None
        self._preferred_sort_key: str | None = None
        self._scan_index_forward = True
        self._limit: int | None = None
        self._exclusive_start_key: dict[str, Any] | None = None
        self._consistent_read = False
        self._projection: list[str] = []

    @property
    def predicates(self) -> tuple[Predicate, ...]:
        return tuple(self._predicates)

    # ------------------------------------------------------------ conditions

    def with_condition(
        self, attribute: str, operator: 'OperatorType | str', *values: Any
    ) -> 'QueryBuilder':
        """Add a predicate the planner may use as a key condition."""
        self._predicates.append(Predicate.of(attribute, operator, *values))
        return self

    def with_eq(self, attribute: str, value: Any) -> 'QueryBuilder':
        return self.with_condition(attribute, OperatorType.EQ, value)

    def with_between(self, attribute: str, start: Any, end: Any) -> 'QueryBuilder':
        return self.with_condition(attribute, OperatorType.BETWEEN, start, end)

    def with_gt(self, attribute: str, value: Any) -> 'QueryBuilder':
        return self.with_condition(attribute, OperatorType.GT, value)

    def with_gte(self, attribute: str, value: Any) -> 'QueryBuilder':
        return self.with_condition(attribute, OperatorType.GTE, value)

    def with_lt(self, attribute: str, value: Any) -> 'QueryBuilder':
        return self.with_condition(attribute, OperatorType.LT, value)

    def with_lte(self, attribute: str, value: Any) -> 'QueryBuilder':
        return self.with_condition(attribute, OperatorType.LTE, value)

    def with_index_hash_key(self, index_name: str, *values: Any) -> 'QueryBuilder':
        """Supply an index's hash key; composite keys take one value per attribute part.

        Raises:
            ValueError: If the index is unknown or the value count is wrong
        """
        index = self._require_index(index_name)
        return self._with_key_values(index, index.hash_key, index.hash_key_parts, values)

    def with_index_range_key(self, index_name: str, *values: Any) -> 'QueryBuilder':
        """Supply an index's range key as equality; composite keys take one value per part.

        Raises:
            ValueError: If the index is unknown, has no range key or the value count is wrong
        """
        index = self._require_index(index_name)
        if index.range_key is None:
            raise ValueError(f"Index '{index_name}' has no range key")
        return self._with_key_values(index, index.range_key, index.range_key_parts, values)

    def _with_key_values(
        self,
        index: SecondaryIndex,
        key: str,
        parts: tuple[CompositeKeyPart, ...],
        values: tuple[Any, ...],
    ) -> 'QueryBuilder':
        if parts:
            names = [part.value for part in self.resolver.non_constant_parts(parts)]
        else:
            names = [key]
        if len(values) != len(names):
            raise ValueError(
                f"Index '{index.name}' key {key} expects {len(names)} value(s) "
                f'({", ".join(names)}), got {len(values)}'
            )
        for name, value in zip(names, values):
            self.with_eq(name, value)
        return self

    def filter(
        self, attribute: str, operator: 'OperatorType | str', *values: Any
    ) -> 'QueryBuilder':
        """Add a predicate that is only ever used as a filter condition."""
        self._predicates.append(Predicate.of(attribute, operator, *values, key_eligible=False))
        return self

    # --------------------------------------------------------------- options

    def use_index(self, index_name: str) -> 'QueryBuilder':
        """Plan against this secondary index only (a scan of it if its key is not supplied)."""
        self._require_index(index_name)
        self._index_name = index_name
        return self

    def prefer_sort_key(self, range_key: str) -> 'QueryBuilder':
        """Among equally scoring secondary indexes, prefer the one with this range key."""
        self._preferred_sort_key = range_key
        return self

    def order_by_asc(self) -> 'QueryBuilder':
        self._scan_index_forward = True
        return self

    def order_by_desc(self) -> 'QueryBuilder':
        self._scan_index_forward = False
        return self

    def limit(self, limit: int) -> 'QueryBuilder':
        if limit <= 0:
            raise ValueError(f'Limit must be greater than 0, got {limit}')
        self._limit = limit
        return self

    def start_from(self, exclusive_start_key: Mapping[str, Any] | None) -> 'QueryBuilder':
        """Continue from a ``LastEvaluatedKey`` returned by a previous page."""
        self._exclusive_start_key = dict(exclusive_start_key) if exclusive_start_key else None
        return self

    def consistent_read(self, enabled: bool = True) -> 'QueryBuilder':
        self._consistent_read = enabled
        return self

    def projection(self, *attributes: str) -> 'QueryBuilder':
        self._projection = list(attributes)
        return self

    # ----------------------------------------------------------------- build

    def plan(self) -> QueryPlan:
        """Plan the accumulated predicates."""
        return self.selector.plan(self._predicates, self._index_name, self._preferred_sort_key)

    def build(self) -> BuiltRequest:
        """Plan and render the request parameters.

        Raises:
            ValueEncodingError: If a condition value cannot be encoded
        """
        plan = self.plan()
        renderer = ExpressionRenderer(self.codec)

        params: dict[str, Any] = {'TableName': self.schema.table_name}
        if plan.target_index:
            params['IndexName'] = plan.target_index
        if plan.key_condition:
            params['KeyConditionExpression'] = renderer.key_condition(plan.key_condition)
        filter_expression = renderer.filter_expression(plan.filter_conditions)
        if filter_expression:
            params['FilterExpression'] = filter_expression
        if self._projection:
            params['ProjectionExpression'] = renderer.projection(self._projection)
        params.update(renderer.placeholder_maps())

        if not plan.is_scan:
            params['ScanIndexForward'] = self._scan_index_forward
        if self._limit is not None:
            params['Limit'] = self._limit
        if self._exclusive_start_key:
            params['ExclusiveStartKey'] = self._exclusive_start_key
        if self._consistent_read:
            index = self.schema.get_index(plan.target_index) if plan.target_index else None
            if index is not None and index.is_global:
                logger.warning(
                    f'Consistent reads are not supported on global secondary index {index.name}; '
                    'using eventually consistent reads'
                )
            else:
                params['ConsistentRead'] = True

        logger.debug(f'Built request: {plan.describe()}')
        return BuiltRequest(plan.target.operation, params, plan)

    def _require_index(self, index_name: str) -> SecondaryIndex:
        index = self.schema.get_index(index_name)
        if index is None:
            available = ', '.join(i.name for i in self.schema.secondary_indexes) or 'none'
            raise ValueError(f"Unknown index '{index_name}'. Available indexes: {available}")
        return index
