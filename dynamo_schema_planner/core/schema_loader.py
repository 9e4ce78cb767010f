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

"""Schema loading orchestration - coordinates file reading, validation and model building."""

from dynamo_schema_planner.core.file_utils import FileUtils
from dynamo_schema_planner.core.identifiers import IdentifierSanitizer
from dynamo_schema_planner.core.schema_definitions import TableSchema
from dynamo_schema_planner.core.schema_validator import SchemaValidator
from dynamo_schema_planner.core.validation_utils import SchemaValidationError
from loguru import logger
from pathlib import Path
from typing import Any


def load_and_validate(raw: Any, sanitizer: IdentifierSanitizer | None = None) -> TableSchema:
    """Validate a decoded description and build its immutable model.

    Args:
        raw: Decoded JSON description
        sanitizer: Identifier sanitizer; defaults to the Python sanitizer

    Returns:
        The validated TableSchema

    Raises:
        SchemaValidationError: If any validation stage fails. No partial schema
            is ever returned.
    """
    validator = SchemaValidator(sanitizer=sanitizer)
    result = validator.validate(raw)
    if not result.is_valid:
        logger.error(f'Schema validation failed with {len(result.errors)} error(s)')
        raise SchemaValidationError(result)

    schema = validator.schema
    logger.info(
        f'Loaded schema for table {schema.table_name}: {len(schema.all_attributes)} attributes, '
        f'{len(schema.secondary_indexes)} secondary indexes'
    )
    return schema


class SchemaLoader:
    """Handles the loading workflow: read -> validate -> build."""

    def __init__(self, schema_path: str, sanitizer: IdentifierSanitizer | None = None):
        """Initialize SchemaLoader.

        Args:
            schema_path: Path to the schema file
            sanitizer: Identifier sanitizer passed on to validation
        """
        self.schema_path = Path(schema_path).resolve()
        self.sanitizer = sanitizer
        self._schema: TableSchema | None = None

    def load_schema(self) -> TableSchema:
        """Read, validate and build the schema.

        Raises:
            FileNotFoundError: If the schema file doesn't exist
            ValueError: If the file is not valid JSON
            SchemaValidationError: If the description is invalid
        """
        logger.info(f'Loading schema. schema_path: {self.schema_path}')
        raw = FileUtils.load_json_file(str(self.schema_path), 'Schema')
        self._schema = load_and_validate(raw, sanitizer=self.sanitizer)
        return self._schema

    @property
    def schema(self) -> TableSchema:
        """Get the loaded schema, loading it on first access."""
        if self._schema is None:
            return self.load_schema()
        return self._schema
