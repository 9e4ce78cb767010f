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

"""Type/operator compatibility table.

Maps each DynamoDB attribute type to the comparison operators that are
meaningful for it. The table is immutable and shared; ``allowed_operators`` is
total, so a type this module does not know degrades to a minimal safe set
instead of failing. ``build_condition`` maps an operator onto the boto3
condition builders.
"""

from boto3.dynamodb.conditions import Attr, AttributeBase, ConditionBase, Key
from dynamo_schema_planner.core.schema_definitions import DynamoDBType, OperatorType
from types import MappingProxyType
from typing import Mapping, Sequence


EXISTENCE_OPERATORS = frozenset({OperatorType.EXISTS, OperatorType.NOT_EXISTS})

MINIMAL_OPERATORS = frozenset({OperatorType.EQ, OperatorType.NE}) | EXISTENCE_OPERATORS

ORDERED_SCALAR_OPERATORS = (
    frozenset(
        {
            OperatorType.EQ,
            OperatorType.NE,
            OperatorType.GT,
            OperatorType.LT,
            OperatorType.GTE,
            OperatorType.LTE,
            OperatorType.BETWEEN,
            OperatorType.IN,
            OperatorType.NOT_IN,
        }
    )
    | EXISTENCE_OPERATORS
)

STRING_OPERATORS = ORDERED_SCALAR_OPERATORS | {
    OperatorType.CONTAINS,
    OperatorType.NOT_CONTAINS,
    OperatorType.BEGINS_WITH,
}

SET_OPERATORS = frozenset({OperatorType.CONTAINS, OperatorType.NOT_CONTAINS}) | EXISTENCE_OPERATORS

# Operators a key condition can use on a range key
KEY_CONDITION_OPERATORS = frozenset(
    {
        OperatorType.EQ,
        OperatorType.GT,
        OperatorType.LT,
        OperatorType.GTE,
        OperatorType.LTE,
        OperatorType.BETWEEN,
    }
)

# https://docs.aws.amazon.com/amazondynamodb/latest/developerguide/Expressions.OperatorsAndFunctions.html
MAX_IN_OPERANDS = 100

OPERATOR_COMPATIBILITY: Mapping[DynamoDBType, frozenset[OperatorType]] = MappingProxyType(
    {
        DynamoDBType.STRING: STRING_OPERATORS,
        DynamoDBType.NUMBER: ORDERED_SCALAR_OPERATORS,
        DynamoDBType.BINARY: ORDERED_SCALAR_OPERATORS,
        DynamoDBType.BOOLEAN: MINIMAL_OPERATORS,
        DynamoDBType.STRING_SET: SET_OPERATORS,
        DynamoDBType.NUMBER_SET: SET_OPERATORS,
        DynamoDBType.BINARY_SET: SET_OPERATORS,
        DynamoDBType.LIST: EXISTENCE_OPERATORS,
        DynamoDBType.MAP: EXISTENCE_OPERATORS,
        DynamoDBType.NULL: EXISTENCE_OPERATORS,
    }
)

_SINGLE_VALUE_OPERATORS = frozenset(
    {
        OperatorType.EQ,
        OperatorType.NE,
        OperatorType.GT,
        OperatorType.LT,
        OperatorType.GTE,
        OperatorType.LTE,
        OperatorType.CONTAINS,
        OperatorType.NOT_CONTAINS,
        OperatorType.BEGINS_WITH,
    }
)


def _resolve_type(dynamo_type: 'DynamoDBType | str | None') -> DynamoDBType | None:
    if isinstance(dynamo_type, DynamoDBType):
        return dynamo_type
    if isinstance(dynamo_type, str):
        try:
            return DynamoDBType(dynamo_type.upper())
        except ValueError:
            return None
    return None


def allowed_operators(dynamo_type: 'DynamoDBType | str | None') -> frozenset[OperatorType]:
    """Return the operators that are legal for an attribute type.

    Args:
        dynamo_type: A ``DynamoDBType`` or its wire code (``'S'``, ``'NS'``, ...)

    Returns:
        The compatibility-table row, or EQ/NE/EXISTS/NOT_EXISTS for an
        unrecognized type
    """
    resolved = _resolve_type(dynamo_type)
    if resolved is None:
        return MINIMAL_OPERATORS
    return OPERATOR_COMPATIBILITY.get(resolved, MINIMAL_OPERATORS)


def is_operator_allowed(dynamo_type: 'DynamoDBType | str | None', operator: OperatorType) -> bool:
    """Check whether ``operator`` may be used on an attribute of ``dynamo_type``."""
    return operator in allowed_operators(dynamo_type)


def is_key_condition_operator(operator: OperatorType) -> bool:
    """Check whether ``operator`` can narrow a range key inside a key condition."""
    return operator in KEY_CONDITION_OPERATORS


def validate_values(operator: OperatorType, values: Sequence) -> str | None:
    """Check that an operator received the number of values it needs.

    Args:
        operator: The predicate operator
        values: The values supplied with it

    Returns:
        An error message, or None when the arity is correct
    """
    count = len(values)
    if operator in _SINGLE_VALUE_OPERATORS:
        if count != 1:
            return f'{operator.value} requires exactly 1 value, got {count}'
    elif operator == OperatorType.BETWEEN:
        if count != 2:
            return f'BETWEEN requires exactly 2 values, got {count}'
    elif operator in (OperatorType.IN, OperatorType.NOT_IN):
        if count == 0:
            return f'{operator.value} requires at least 1 value'
        if count > MAX_IN_OPERANDS:
            return f'{operator.value} accepts at most {MAX_IN_OPERANDS} values, got {count}'
    elif operator in EXISTENCE_OPERATORS:
        if count != 0:
            return f'{operator.value} takes no values, got {count}'
    return None



_CONDITION_METHODS: Mapping[OperatorType, str] = MappingProxyType(
    {
        OperatorType.EQ: 'eq',
        OperatorType.NE: 'ne',
        OperatorType.GT: 'gt',
        OperatorType.LT: 'lt',
        OperatorType.GTE: 'gte',
        OperatorType.LTE: 'lte',
        OperatorType.BETWEEN: 'between',
        OperatorType.IN: 'is_in',
        OperatorType.CONTAINS: 'contains',
        OperatorType.BEGINS_WITH: 'begins_with',
        OperatorType.EXISTS: 'exists',
        OperatorType.NOT_EXISTS: 'not_exists',
    }
)

_NEGATED_OPERATORS = {
    OperatorType.NOT_IN: OperatorType.IN,
    OperatorType.NOT_CONTAINS: OperatorType.CONTAINS,
}


def build_condition(
    attribute: str, operator: OperatorType, values: Sequence, key: bool = False
) -> ConditionBase:
    """Build the boto3 condition for one predicate.

    Args:
        attribute: Attribute name
        operator: The condition operator
        values: Condition values; arity must already have been checked with
            ``validate_values``
        key: Build a ``Key`` condition for a ``KeyConditionExpression``

    Raises:
        ValueError: If ``key`` is set and the operator cannot be used on a key
    """
    if key and operator not in KEY_CONDITION_OPERATORS:
        raise ValueError(f'{operator.value} cannot be used in a key condition')
    if operator in _NEGATED_OPERATORS:
        return ~build_condition(attribute, _NEGATED_OPERATORS[operator], values)

    method = getattr(Key(attribute) if key else Attr(attribute), _CONDITION_METHODS[operator])
    if operator == OperatorType.IN:
        return method(list(values))
    return method(*values)


def describe_condition(condition: ConditionBase) -> str:
    """Render a condition with plain names and values instead of placeholders.

    Examples:
        >>> describe_condition(build_condition('age', OperatorType.BETWEEN, [18, 30]))
        'age BETWEEN 18 AND 30'
    """
    expression = condition.get_expression()
    rendered = []
    for value in expression['values']:
        if isinstance(value, ConditionBase):
            rendered.append(describe_condition(value))
        elif isinstance(value, AttributeBase):
            rendered.append(value.name)
        elif condition.has_grouped_values:
            rendered.append('(' + ', '.join(str(v) for v in value) + ')')
        else:
            rendered.append(str(value))
    return expression['format'].format(*rendered, operator=expression['operator'])
