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

"""Composite key resolution.

A composite key is one physical string attribute assembled from several
segments joined by ``#``. Each segment is either a constant literal or the
value of a declared attribute. The same resolver builds keys on the write path
and materializes key conditions on the query path, so both always agree on
ordering, separator and value formatting.

Description syntax for a composite key string::

    "category#is_published"          two attribute references
    "const:USER#var:user_id"         a literal followed by an attribute reference
"""

from dynamo_schema_planner.core.schema_definitions import (
    COMPOSITE_PART_TYPES,
    CompositeKeyPart,
    DynamoDBType,
)
from dynamo_schema_planner.core.validation_utils import CompositeKeyError, ValidationError
from dynamo_schema_planner.core.value_codec import PredicateValue, ValueKind
from typing import Any, Mapping, Sequence


KEY_SEPARATOR = '#'
CONSTANT_PREFIX = 'const:'
VARIABLE_PREFIX = 'var:'


def _format_number(number: Any) -> str:
    if isinstance(number, float):
        text = repr(number)
        return text[:-2] if text.endswith('.0') else text
    return str(number)


class CompositeKeyResolver:
    """Builds, splits and validates composite keys."""

    def __init__(self, separator: str = KEY_SEPARATOR):
        """Initialize the resolver.

        Args:
            separator: String placed between segments
        """
        self.separator = separator

    def is_composite(self, expression: str) -> bool:
        """Whether a key expression from a description declares a composite key."""
        return self.separator in expression or expression.startswith(
            (CONSTANT_PREFIX, VARIABLE_PREFIX)
        )

    def parse(self, expression: str) -> tuple[CompositeKeyPart, ...]:
        """Parse a key expression into its parts.

        Examples:
            >>> resolver = CompositeKeyResolver()
            >>> [str(p) for p in resolver.parse('const:USER#user_id')]
            ['const:USER', 'var:user_id']
        """
        return tuple(self.parse_segment(segment) for segment in expression.split(self.separator))

    @staticmethod
    def parse_segment(segment: str) -> CompositeKeyPart:
        """Parse one segment; bare segments reference attributes."""
        if segment.startswith(CONSTANT_PREFIX):
            return CompositeKeyPart(segment[len(CONSTANT_PREFIX) :], is_constant=True)
        if segment.startswith(VARIABLE_PREFIX):
            return CompositeKeyPart(segment[len(VARIABLE_PREFIX) :])
        return CompositeKeyPart(segment)

    def physical_name(self, parts: Sequence[CompositeKeyPart]) -> str:
        """Name of the attribute that stores the composite value."""
        return self.separator.join(part.value for part in parts)

    @staticmethod
    def non_constant_parts(parts: Sequence[CompositeKeyPart]) -> list[CompositeKeyPart]:
        """Parts callers must supply values for, in declared order."""
        return [part for part in parts if not part.is_constant]

    def validate_parts(
        self,
        parts: Sequence[CompositeKeyPart],
        attribute_types: Mapping[str, DynamoDBType],
        path: str,
    ) -> list[ValidationError]:
        """Validate a composite key definition against the declared attributes.

        Args:
            parts: Parsed composite key parts
            attribute_types: Declared attribute names mapped to their types
            path: Path context for error reporting

        Returns:
            List of ValidationError objects, empty when the definition is sound
        """
        errors = []
        if not parts:
            errors.append(
                ValidationError(
                    path=path,
                    message='Composite key has no parts',
                    suggestion='Declare at least one attribute part',
                )
            )
            return errors

        for i, part in enumerate(parts):
            part_path = f'{path}[{i}]'
            if part.is_constant:
                if not part.value:
                    errors.append(
                        ValidationError(
                            path=part_path,
                            message='Constant composite key part is empty',
                            suggestion='Give the constant a literal value or remove it',
                        )
                    )
                elif self.separator in part.value:
                    errors.append(
                        ValidationError(
                            path=part_path,
                            message=f"Constant '{part.value}' contains the key separator "
                            f"'{self.separator}'",
                            suggestion='Split the literal into separate constant parts',
                        )
                    )
                continue

            if part.value not in attribute_types:
                available = ', '.join(sorted(attribute_types))
                errors.append(
                    ValidationError(
                        path=part_path,
                        message=f"Composite key part '{part.value}' is not a declared attribute",
                        suggestion=f'Use one of the declared attributes: {available}',
                    )
                )
            elif attribute_types[part.value] not in COMPOSITE_PART_TYPES:
                errors.append(
                    ValidationError(
                        path=part_path,
                        message=f"Attribute '{part.value}' of type "
                        f'{attribute_types[part.value].value} cannot be part of a composite key',
                        suggestion='Composite key parts must be S, N or BOOL attributes',
                    )
                )

        if not self.non_constant_parts(parts):
            errors.append(
                ValidationError(
                    path=path,
                    message='Composite key has only constant parts',
                    suggestion='Reference at least one attribute in the composite key',
                )
            )
        return errors

    def format_value(self, name: str, value: Any) -> str:
        """Stringify one supplied value for a composite key segment.

        Raises:
            CompositeKeyError: If the value cannot be placed in a composite key
        """
        try:
            value = PredicateValue.of(value)
        except (TypeError, ValueError) as e:
            raise CompositeKeyError(f"Invalid value for composite key part '{name}': {e}") from e

        kind = value.kind
        if kind == ValueKind.STRING:
            text = value.payload
        elif kind == ValueKind.BOOLEAN:
            text = 'true' if value.payload else 'false'
        elif kind == ValueKind.NUMBER:
            text = _format_number(value.payload)
        elif kind == ValueKind.STRING_SET:
            text = ','.join(sorted(value.payload))
        elif kind == ValueKind.NUMBER_SET:
            text = ','.join(_format_number(n) for n in sorted(value.payload))
        else:
            raise CompositeKeyError(
                f"Value of kind {kind.name} cannot be used for composite key part '{name}'"
            )

        if self.separator in text:
            raise CompositeKeyError(
                f"Value for composite key part '{name}' contains the key separator "
                f"'{self.separator}': {text!r}"
            )
        return text

    def build(self, parts: Sequence[CompositeKeyPart], supplied_values: Mapping[str, Any]) -> str:
        """Build a composite key value.

        Args:
            parts: Composite key parts in declared order
            supplied_values: Values for the non-constant parts, keyed by attribute name

        Returns:
            The joined key value

        Raises:
            CompositeKeyError: If a non-constant part has no value or a value is unusable
        """
        segments = []
        for part in parts:
            if part.is_constant:
                segments.append(part.value)
                continue
            value = supplied_values.get(part.value)
            if value is None:
                raise CompositeKeyError(f"Missing value for composite key part '{part.value}'")
            segments.append(self.format_value(part.value, value))
        return self.separator.join(segments)

    def build_positional(self, parts: Sequence[CompositeKeyPart], values: Sequence[Any]) -> str:
        """Build a composite key from values given in ``non_constant_parts`` order.

        Raises:
            CompositeKeyError: If the number of values does not match
        """
        variables = self.non_constant_parts(parts)
        if len(values) != len(variables):
            expected = ', '.join(part.value for part in variables)
            raise CompositeKeyError(
                f'Expected {len(variables)} values ({expected}), got {len(values)}'
            )
        return self.build(parts, {part.value: v for part, v in zip(variables, values)})

    def split(self, parts: Sequence[CompositeKeyPart], value: str) -> dict[str, str]:
        """Deconstruct a built composite value into its attribute segments.

        Returns:
            Attribute name mapped to its string segment, in declared order

        Raises:
            CompositeKeyError: If the value does not match the definition
        """
        segments = value.split(self.separator)
        if len(segments) != len(parts):
            raise CompositeKeyError(
                f'Composite value {value!r} has {len(segments)} segments, expected {len(parts)}'
            )
        result = {}
        for part, segment in zip(parts, segments):
            if part.is_constant:
                if segment != part.value:
                    raise CompositeKeyError(
                        f'Composite value {value!r} has {segment!r} where '
                        f'constant {part.value!r} was expected'
                    )
                continue
            result[part.value] = segment
        return result
