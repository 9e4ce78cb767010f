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

"""Index selection: choose the access path for a set of predicates.

Given a ``TableSchema`` and the predicates a caller accumulated, the selector
scores the base table and every secondary index:

* 2 points when the hash key can be satisfied by EQ predicates (for a
  composite key, every attribute part needs an EQ predicate);
* 1 more point when the range key can also be satisfied by a predicate with a
  range-capable operator;
* candidates whose hash key cannot be satisfied are discarded.

The base table wins whenever it qualifies. Otherwise the highest score wins;
ties go to the index whose range key matches the caller's preferred sort key,
then to the index declared first. Predicates the key condition does not
consume become filters, or are dropped with a reason when their operator is
not valid for the attribute type. When no candidate qualifies the plan is a
scan. Planning never raises for predicate content.
"""

from dataclasses import dataclass
from dynamo_schema_planner.core.composite_key import CompositeKeyResolver
from dynamo_schema_planner.core.operators import (
    KEY_CONDITION_OPERATORS,
    allowed_operators,
    build_condition,
    describe_condition,
    validate_values,
)
from dynamo_schema_planner.core.schema_definitions import (
    CompositeKeyPart,
    OperatorType,
    SecondaryIndex,
    TableSchema,
)
from dynamo_schema_planner.core.validation_utils import CompositeKeyError
from dynamo_schema_planner.core.value_codec import PredicateValue, ValueKind
from enum import Enum
from loguru import logger
from typing import Any, Iterable, Sequence


def _describe(attribute: str, operator: OperatorType, values: Sequence[PredicateValue]) -> str:
    if validate_values(operator, values) is not None:
        return f'{attribute} {operator.value} ({", ".join(str(v) for v in values)})'
    return describe_condition(build_condition(attribute, operator, values))


class OperationType(Enum):
    """DynamoDB read operations a plan can use."""

    QUERY = 'Query'
    SCAN = 'Scan'


@dataclass(frozen=True)
class Predicate:
    """One caller-supplied condition on an attribute.

    ``key_eligible`` is False for predicates added explicitly as filters; those
    never take part in a key condition.
    """

    attribute: str
    operator: OperatorType
    values: tuple[PredicateValue, ...] = ()
    key_eligible: bool = True

    @classmethod
    def of(
        cls,
        attribute: str,
        operator: 'OperatorType | str',
        *values: Any,
        key_eligible: bool = True,
    ) -> 'Predicate':
        """Build a predicate from native values.

        Raises:
            ValueError: If the operator is unknown or a value cannot be classified
            TypeError: If a value has no DynamoDB representation
        """
        return cls(
            attribute=attribute,
            operator=OperatorType.from_string(operator),
            values=tuple(PredicateValue.of(v) for v in values),
            key_eligible=key_eligible,
        )

    def describe(self) -> str:
        return _describe(self.attribute, self.operator, self.values)


@dataclass(frozen=True)
class ConditionPart:
    """One half of a key condition.

    ``attribute`` is the physical key attribute; for a composite key
    ``source_attributes`` lists the attributes its value was built from.
    """

    attribute: str
    operator: OperatorType
    values: tuple[PredicateValue, ...]
    source_attributes: tuple[str, ...] = ()

    def describe(self) -> str:
        return _describe(self.attribute, self.operator, self.values)


@dataclass(frozen=True)
class KeyCondition:
    """Key condition of a query: hash key equality plus an optional range condition."""

    hash_key: ConditionPart
    range_key: ConditionPart | None = None

    @property
    def parts(self) -> tuple[ConditionPart, ...]:
        return (self.hash_key, self.range_key) if self.range_key else (self.hash_key,)

    def describe(self) -> str:
        return ' AND '.join(part.describe() for part in self.parts)


@dataclass(frozen=True)
class FilterCondition:
    """A condition evaluated after the read."""

    attribute: str
    operator: OperatorType
    values: tuple[PredicateValue, ...] = ()

    def describe(self) -> str:
        return _describe(self.attribute, self.operator, self.values)


@dataclass(frozen=True)
class DroppedPredicate:
    """A predicate left out of the plan, with the reason."""

    predicate: Predicate
    reason: str


@dataclass(frozen=True)
class PlanTarget:
    """Where a plan reads from."""

    operation: OperationType
    index_name: str | None = None

    @property
    def is_scan(self) -> bool:
        return self.operation == OperationType.SCAN

    def describe(self) -> str:
        source = f'index {self.index_name}' if self.index_name else 'base table'
        return f'{self.operation.value} on {source}'


@dataclass(frozen=True)
class QueryPlan:
    """Chosen access path for one query."""

    target: PlanTarget
    key_condition: KeyCondition | None
    filter_conditions: tuple[FilterCondition, ...] = ()
    dropped_predicates: tuple[DroppedPredicate, ...] = ()
    score: int = 0

    @property
    def is_scan(self) -> bool:
        return self.target.is_scan

    @property
    def target_index(self) -> str | None:
        return self.target.index_name

    @property
    def uses_base_table(self) -> bool:
        return self.target.index_name is None

    def describe(self) -> str:
        """One-line summary of the plan, stable for identical inputs."""
        lines = [self.target.describe()]
        if self.key_condition:
            lines.append(f'key: {self.key_condition.describe()}')
        if self.filter_conditions:
            lines.append('filter: ' + ' AND '.join(f.describe() for f in self.filter_conditions))
        if self.dropped_predicates:
            dropped = [f'{d.predicate.describe()} ({d.reason})' for d in self.dropped_predicates]
            lines.append('dropped: ' + '; '.join(dropped))
        return ' | '.join(lines)


@dataclass(frozen=True)
class _Candidate:
    index: SecondaryIndex | None
    hash_key: str
    hash_key_parts: tuple[CompositeKeyPart, ...]
    range_key: str | None
    range_key_parts: tuple[CompositeKeyPart, ...]

    @property
    def name(self) -> str:
        return self.index.name if self.index else 'base table'


@dataclass(frozen=True)
class _Match:
    candidate: _Candidate
    score: int
    key_condition: KeyCondition | None = None
    consumed: frozenset[int] = frozenset()


class IndexSelector:
    """Plans queries against one table schema."""

    def __init__(self, schema: TableSchema, resolver: CompositeKeyResolver | None = None):
        """Initialize the selector.

        Args:
            schema: Validated table schema
            resolver: Composite key resolver; must match the write path
        """
        self.schema = schema
        self.resolver = resolver or CompositeKeyResolver()

    def _candidates(self, index_name: str | None = None) -> list[_Candidate]:
        """Base table and secondary indexes in declaration order.

        Raises:
            ValueError: If ``index_name`` names no secondary index
        """
        schema = self.schema
        if index_name is not None:
            index = schema.get_index(index_name)
            if index is None:
                raise ValueError(f"Unknown index '{index_name}' on table {schema.table_name}")
            return [self._index_candidate(index)]

        candidates = [_Candidate(None, schema.hash_key, (), schema.range_key, ())]
        candidates.extend(self._index_candidate(index) for index in schema.secondary_indexes)
        return candidates

    @staticmethod
    def _index_candidate(index: SecondaryIndex) -> _Candidate:
        return _Candidate(
            index,
            index.hash_key,
            index.hash_key_parts,
            index.range_key,
            index.range_key_parts,
        )

    def plan(
        self,
        predicates: Iterable[Predicate],
        index_name: str | None = None,
        preferred_sort_key: str | None = None,
    ) -> QueryPlan:
        """Choose the access path for ``predicates``.

        Args:
            predicates: Predicates in the order the caller added them
            index_name: Restrict planning to this secondary index
            preferred_sort_key: Among equally scoring secondary indexes, prefer
                the one whose (physical) range key has this name

        Returns:
            A query plan, or a scan plan when no candidate's hash key is satisfiable

        Raises:
            ValueError: If ``index_name`` names no secondary index
        """
        predicates = tuple(predicates)
        candidates = self._candidates(index_name)
        matches = [self._match(candidate, predicates) for candidate in candidates]
        chosen = self._choose([match for match in matches if match.score > 0], preferred_sort_key)

        if chosen is None:
            target = PlanTarget(OperationType.SCAN, index_name)
            filters, dropped = self._split_filters(predicates, frozenset())
            logger.debug(f'No hash key satisfiable; falling back to {target.describe()}')
            return QueryPlan(target, None, filters, dropped, 0)

        index = chosen.candidate.index
        target = PlanTarget(OperationType.QUERY, index.name if index else None)
        filters, dropped = self._split_filters(predicates, chosen.consumed)
        logger.debug(f'Chose {chosen.candidate.name} with score {chosen.score}')
        return QueryPlan(target, chosen.key_condition, filters, dropped, chosen.score)

    def score(self, predicates: Iterable[Predicate]) -> dict[str, int]:
        """Score of every candidate, keyed by index name ('base table' for the table)."""
        predicates = tuple(predicates)
        return {
            candidate.name: self._match(candidate, predicates).score
            for candidate in self._candidates()
        }

    # --------------------------------------------------------------- scoring

    def _match(self, candidate: _Candidate, predicates: Sequence[Predicate]) -> _Match:
        hash_part, consumed = self._satisfy_equality(
            candidate.hash_key, candidate.hash_key_parts, predicates, frozenset()
        )
        if hash_part is None:
            return _Match(candidate, 0)

        range_part = None
        if candidate.range_key_parts:
            range_part, consumed = self._satisfy_equality(
                candidate.range_key, candidate.range_key_parts, predicates, consumed
            )
        elif candidate.range_key:
            range_part, consumed = self._satisfy_range(candidate.range_key, predicates, consumed)

        score = 3 if range_part else 2
        return _Match(candidate, score, KeyCondition(hash_part, range_part), consumed)

    def _find(
        self,
        attribute: str,
        operators: frozenset[OperatorType],
        predicates: Sequence[Predicate],
        consumed: frozenset[int],
    ) -> int | None:
        for position, predicate in enumerate(predicates):
            if (
                position not in consumed
                and predicate.key_eligible
                and predicate.attribute == attribute
                and predicate.operator in operators
                and validate_values(predicate.operator, predicate.values) is None
            ):
                return position
        return None

    def _satisfy_equality(
        self,
        key: str,
        parts: tuple[CompositeKeyPart, ...],
        predicates: Sequence[Predicate],
        consumed: frozenset[int],
    ) -> tuple[ConditionPart | None, frozenset[int]]:
        equality = frozenset({OperatorType.EQ})
        if not parts:
            position = self._find(key, equality, predicates, consumed)
            if position is None:
                return None, consumed
            part = ConditionPart(key, OperatorType.EQ, predicates[position].values)
            return part, consumed | {position}

        positions = {}
        for part in self.resolver.non_constant_parts(parts):
            position = self._find(part.value, equality, predicates, consumed)
            if position is None:
                return None, consumed
            positions[part.value] = position

        values = {name: predicates[position].values[0] for name, position in positions.items()}
        try:
            composite = self.resolver.build(parts, values)
        except CompositeKeyError as e:
            logger.debug(f'Cannot build composite key {key}: {e}')
            return None, consumed
        part = ConditionPart(
            key,
            OperatorType.EQ,
            (PredicateValue(ValueKind.STRING, composite),),
            tuple(positions),
        )
        return part, consumed | set(positions.values())

    def _satisfy_range(
        self, key: str, predicates: Sequence[Predicate], consumed: frozenset[int]
    ) -> tuple[ConditionPart | None, frozenset[int]]:
        position = self._find(key, KEY_CONDITION_OPERATORS, predicates, consumed)
        if position is None:
            return None, consumed
        predicate = predicates[position]
        return ConditionPart(key, predicate.operator, predicate.values), consumed | {position}

    @staticmethod
    def _choose(matches: list[_Match], preferred_sort_key: str | None = None) -> _Match | None:
        base = next((match for match in matches if match.candidate.index is None), None)
        if base is not None:
            return base

        def rank(match: _Match) -> tuple[int, bool]:
            prefers = preferred_sort_key is not None
            return match.score, prefers and match.candidate.range_key == preferred_sort_key

        best = None
        for match in matches:
            if best is None or rank(match) > rank(best):
                best = match
        return best

    # --------------------------------------------------------------- filters

    def _split_filters(
        self, predicates: Sequence[Predicate], consumed: frozenset[int]
    ) -> tuple[tuple[FilterCondition, ...], tuple[DroppedPredicate, ...]]:
        filters = []
        dropped = []
        for position, predicate in enumerate(predicates):
            if position in consumed:
                continue
            reason = self._rejection_reason(predicate)
            if reason is not None:
                logger.debug(f'Dropping predicate {predicate.describe()}: {reason}')
                dropped.append(DroppedPredicate(predicate, reason))
            else:
                filters.append(
                    FilterCondition(predicate.attribute, predicate.operator, predicate.values)
                )
        return tuple(filters), tuple(dropped)

    def _rejection_reason(self, predicate: Predicate) -> str | None:
        field_info = self.schema.fields_map.get(predicate.attribute)
        if field_info is not None:
            operators = field_info.allowed_operators
            type_name = field_info.dynamo_type.value
        else:
            operators = allowed_operators(None)
            type_name = 'unknown'

        if predicate.operator not in operators:
            return (
                f'operator {predicate.operator.value} is not valid for attribute '
                f"'{predicate.attribute}' of type {type_name}"
            )
        return validate_values(predicate.operator, predicate.values)


def plan_query(
    schema: TableSchema,
    predicates: Iterable[Predicate],
    index_name: str | None = None,
    preferred_sort_key: str | None = None,
) -> QueryPlan:
    """Plan ``predicates`` against ``schema`` with a fresh selector."""
    return IndexSelector(schema).plan(predicates, index_name, preferred_sort_key)
