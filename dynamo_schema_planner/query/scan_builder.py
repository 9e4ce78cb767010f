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

"""Scan builder: full-table or full-index reads with filters."""

from dynamo_schema_planner.core.index_selector import IndexSelector, Predicate, QueryPlan
from dynamo_schema_planner.core.schema_definitions import OperatorType, TableSchema
from dynamo_schema_planner.core.value_codec import BotoValueCodec, ValueCodec
from dynamo_schema_planner.query.expressions import BuiltRequest, ExpressionRenderer
from dynamo_schema_planner.query.filters import FilterMethodsMixin
from loguru import logger
from typing import Any, Mapping


# https://docs.aws.amazon.com/amazondynamodb/latest/APIReference/API_Scan.html
MAX_TOTAL_SEGMENTS = 1000000


class ScanBuilder(FilterMethodsMixin):
    """Accumulates filters and options for one scan."""

    def __init__(
        self,
        schema: TableSchema,
        codec: ValueCodec | None = None,
        selector: IndexSelector | None = None,
    ):
        """Initialize the builder.

        Args:
            schema: Validated table schema
            codec: Codec for filter values; defaults to ``BotoValueCodec``
            selector: Index selector used to validate filters
        """
        self.schema = schema
        self.codec = codec or BotoValueCodec()
        self.selector = selector or IndexSelector(schema)
        self._predicates: list[Predicate] = []
        self._index_name: str | None = None
        self._projection: list[str] = []
        self._limit: int | None = None
        self._exclusive_start_key: dict[str, Any] | None = None
        self._segment: int | None = None
        self._total_segments: int | None = None
        self._consistent_read = False

    def filter(
        self, attribute: str, operator: 'OperatorType | str', *values: Any
    ) -> 'ScanBuilder':
        """Add a filter condition."""
        self._predicates.append(Predicate.of(attribute, operator, *values, key_eligible=False))
        return self

    def use_index(self, index_name: str) -> 'ScanBuilder':
        if self.schema.get_index(index_name) is None:
            raise ValueError(f"Unknown index '{index_name}'")
        self._index_name = index_name
        return self

    def projection(self, *attributes: str) -> 'ScanBuilder':
        self._projection = list(attributes)
        return self

    def limit(self, limit: int) -> 'ScanBuilder':
        if limit <= 0:
            raise ValueError(f'Limit must be greater than 0, got {limit}')
        self._limit = limit
        return self

    def start_from(self, exclusive_start_key: Mapping[str, Any] | None) -> 'ScanBuilder':
        self._exclusive_start_key = dict(exclusive_start_key) if exclusive_start_key else None
        return self

    def consistent_read(self, enabled: bool = True) -> 'ScanBuilder':
        self._consistent_read = enabled
        return self

    def parallel(self, segment: int, total_segments: int) -> 'ScanBuilder':
        """Scan one segment of a parallel scan.

        Raises:
            ValueError: If the segment numbers are out of range
        """
        if not 1 <= total_segments <= MAX_TOTAL_SEGMENTS:
            raise ValueError(
                f'total_segments must be between 1 and {MAX_TOTAL_SEGMENTS}, got {total_segments}'
            )
        if not 0 <= segment < total_segments:
            raise ValueError(f'segment must be between 0 and {total_segments - 1}, got {segment}')
        self._segment = segment
        self._total_segments = total_segments
        return self

    def plan(self) -> QueryPlan:
        """Split filters into usable and dropped ones; the target is always a scan."""
        return self.selector.plan(self._predicates, self._index_name)

    def build(self) -> BuiltRequest:
        """Render the Scan request parameters.

        Raises:
            ValueEncodingError: If a filter value cannot be encoded
        """
        plan = self.plan()
        renderer = ExpressionRenderer(self.codec)

        params: dict[str, Any] = {'TableName': self.schema.table_name}
        if self._index_name:
            params['IndexName'] = self._index_name
        filter_expression = renderer.filter_expression(plan.filter_conditions)
        if filter_expression:
            params['FilterExpression'] = filter_expression
        if self._projection:
            params['ProjectionExpression'] = renderer.projection(self._projection)
        params.update(renderer.placeholder_maps())

        if self._limit is not None:
            params['Limit'] = self._limit
        if self._exclusive_start_key:
            params['ExclusiveStartKey'] = self._exclusive_start_key
        if self._total_segments is not None:
            params['Segment'] = self._segment
            params['TotalSegments'] = self._total_segments
        if self._consistent_read:
            index = self.schema.get_index(self._index_name) if self._index_name else None
            if index is not None and index.is_global:
                logger.warning(
                    f'Consistent reads are not supported on global secondary index {index.name}'
                )
            else:
                params['ConsistentRead'] = True

        logger.debug(f'Built request: {plan.describe()}')
        return BuiltRequest(plan.target.operation, params, plan)
