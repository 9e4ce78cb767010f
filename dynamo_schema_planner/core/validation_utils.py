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

"""Validation models and exception types shared across the planner.

Schema validation never stops at the first problem inside a stage; it collects
``ValidationError`` records into a ``ValidationResult`` so that a caller sees
every offending field at once.
"""

from dataclasses import dataclass, field


@dataclass
class ValidationError:
    """Represents a validation error with context and suggestions."""

    path: str  # e.g., "secondary_indexes[0].hash_key"
    message: str
    suggestion: str = ''
    severity: str = 'error'  # "error" | "warning"


@dataclass
class ValidationResult:
    """Result of schema validation."""

    is_valid: bool = True
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    def add_error(self, path: str, message: str, suggestion: str = '') -> None:
        """Add an error to the validation result."""
        self.errors.append(ValidationError(path, message, suggestion, 'error'))
        self.is_valid = False

    def add_errors(self, errors: list[ValidationError]) -> None:
        """Add multiple errors to the validation result."""
        if errors:
            self.errors.extend(errors)
            self.is_valid = False

    def add_warning(self, path: str, message: str, suggestion: str = '') -> None:
        """Add a warning to the validation result."""
        self.warnings.append(ValidationError(path, message, suggestion, 'warning'))

    def error_paths(self) -> list[str]:
        """Paths of every recorded error, in the order they were found."""
        return [error.path for error in self.errors]

    def format(self, success_message: str, failure_prefix: str) -> str:
        """Format validation result as human-readable string.

        Args:
            success_message: Message to show on success
            failure_prefix: Prefix for failure message

        Returns:
            Formatted string representation
        """
        if self.is_valid and not self.warnings:
            return f'✅ {success_message}'

        output = []
        if self.is_valid:
            output.append(f'✅ {success_message}')

        if self.errors:
            output.append(f'❌ {failure_prefix}:')
            for error in self.errors:
                output.append(f'  • {error.path}: {error.message}')
                if error.suggestion:
                    output.append(f'    💡 {error.suggestion}')

        if self.warnings:
            output.append('⚠️  Warnings:')
            for warning in self.warnings:
                output.append(f'  • {warning.path}: {warning.message}')
                if warning.suggestion:
                    output.append(f'    💡 {warning.suggestion}')

        return '\n'.join(output)


class PlannerError(Exception):
    """Base class for errors raised by dynamo_schema_planner."""

    pass


class SchemaValidationError(PlannerError, ValueError):
    """Exception raised when a schema description fails validation.

    The full ``ValidationResult`` is kept on ``result``; the message lists
    every offending path.
    """

    def __init__(self, result: ValidationResult):
        """Initialize from a failed validation result."""
        self.result = result
        super().__init__(
            'Schema validation failed:\n'
            + result.format('Schema is valid', 'Schema validation failed')
        )


class CompositeKeyError(PlannerError, ValueError):
    """Exception raised when a composite key value cannot be built or split."""

    pass


class KeyBuildError(PlannerError, ValueError):
    """Exception raised when a primary key cannot be assembled from the supplied values."""

    pass


class ValueEncodingError(PlannerError, ValueError):
    """Exception raised when the value codec cannot encode a value for an attribute."""

    def __init__(self, attribute: str, message: str):
        """Initialize with the offending attribute name."""
        self.attribute = attribute
        super().__init__(f"Cannot encode value for attribute '{attribute}': {message}")


class ValueDecodingError(PlannerError, ValueError):
    """Exception raised when a wire attribute value cannot be decoded."""

    pass
