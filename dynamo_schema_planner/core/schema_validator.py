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

"""Staged validation of table descriptions.

Validation runs in five stages: structure, attributes, key references,
secondary indexes, identifiers. Every stage reports all of its errors, but a
stage only runs when the previous ones passed, since later checks rely on
earlier invariants (for example, index checks need a known set of attribute
types). A description that passes every stage is assembled into an immutable
``TableSchema``.
"""

import difflib
from dataclasses import dataclass, field
from dynamo_schema_planner.core.composite_key import CompositeKeyResolver
from dynamo_schema_planner.core.identifiers import IdentifierSanitizer, PythonIdentifierSanitizer
from dynamo_schema_planner.core.operators import allowed_operators
from dynamo_schema_planner.core.raw_schema import (
    RawAttribute,
    RawKeyPart,
    RawSecondaryIndex,
    RawTableSchema,
    parse_raw_schema,
)
from dynamo_schema_planner.core.schema_definitions import (
    KEY_ATTRIBUTE_TYPES,
    MAX_GSIS_PER_TABLE,
    MAX_LSIS_PER_TABLE,
    SUBTYPE_COMPATIBILITY,
    Attribute,
    AttributeSubtype,
    CompositeKeyPart,
    DynamoDBType,
    FieldInfo,
    IndexType,
    ProjectionType,
    SecondaryIndex,
    TableSchema,
    validate_enum_field,
)
from dynamo_schema_planner.core.validation_utils import ValidationError, ValidationResult
from loguru import logger
from types import MappingProxyType
from typing import Any, Callable


@dataclass
class _ResolvedKey:
    """A key declaration after parsing: physical name plus composite parts."""

    name: str
    parts: tuple[CompositeKeyPart, ...] = ()


@dataclass
class _IndexDraft:
    name: str
    index_type: IndexType
    projection_type: ProjectionType
    hash_key: _ResolvedKey
    range_key: _ResolvedKey | None
    raw: RawSecondaryIndex
    errors: list[ValidationError] = field(default_factory=list)


class SchemaValidator:
    """Validates a table description and builds the ``TableSchema``."""

    def __init__(
        self,
        sanitizer: IdentifierSanitizer | None = None,
        resolver: CompositeKeyResolver | None = None,
    ):
        """Initialize the validator.

        Args:
            sanitizer: Identifier sanitizer for the target language
            resolver: Composite key resolver used to parse key expressions
        """
        self.sanitizer = sanitizer or PythonIdentifierSanitizer()
        self.resolver = resolver or CompositeKeyResolver()
        self.result = ValidationResult()
        self.schema: TableSchema | None = None
        self._reset()

    def _reset(self) -> None:
        self._raw: RawTableSchema | None = None
        self._types: dict[str, DynamoDBType] = {}
        self._subtypes: dict[str, AttributeSubtype | None] = {}
        self._indexes: list[_IndexDraft] = []
        self._identifiers: dict[str, str] = {}
        self._index_identifiers: dict[str, str] = {}
        self._table_identifier = ''

    def validate(self, raw: Any) -> ValidationResult:
        """Validate a decoded table description.

        Args:
            raw: Decoded JSON description

        Returns:
            ValidationResult; on success ``self.schema`` holds the built model
        """
        self.result = ValidationResult()
        self.schema = None
        self._reset()

        stages: list[tuple[str, Callable[[], list[ValidationError]]]] = [
            ('structure', lambda: self._validate_structure(raw)),
            ('attributes', self._validate_attributes),
            ('key references', self._validate_key_references),
            ('secondary indexes', self._validate_secondary_indexes),
            ('identifiers', self._validate_identifiers),
        ]
        for stage_name, stage in stages:
            errors = stage()
            if errors:
                logger.debug(f'Schema validation stopped at {stage_name}: {len(errors)} error(s)')
                self.result.add_errors(errors)
                return self.result

        self.schema = self._build_schema()
        return self.result

    def format_validation_result(self) -> str:
        """Format the last validation result for humans."""
        return self.result.format('Schema validation passed!', 'Schema validation failed')

    # ------------------------------------------------------------------ stages

    def _validate_structure(self, raw: Any) -> list[ValidationError]:
        self._raw, errors = parse_raw_schema(raw)
        return errors

    def _attribute_groups(self) -> tuple[tuple[str, list[RawAttribute]], ...]:
        return (
            ('attributes', self._raw.attributes),
            ('common_attributes', self._raw.common_attributes),
        )

    def _validate_attributes(self) -> list[ValidationError]:
        errors = []
        seen: set[str] = set()
        for group, attributes in self._attribute_groups():
            for i, attribute in enumerate(attributes):
                path = f'{group}[{i}]'
                errors.extend(self._validate_attribute(attribute, path))
                if attribute.name in seen:
                    errors.append(
                        ValidationError(
                            path=f'{path}.name',
                            message=f"Duplicate attribute name '{attribute.name}'",
                            suggestion='Declare each attribute once',
                        )
                    )
                seen.add(attribute.name)
        return errors

    def _validate_attribute(self, attribute: RawAttribute, path: str) -> list[ValidationError]:
        errors = []
        if not self.sanitizer.sanitize(attribute.name):
            errors.append(
                ValidationError(
                    path=f'{path}.name',
                    message=f"Attribute name '{attribute.name}' is empty after sanitization",
                    suggestion='Use a name containing at least one letter or digit',
                )
            )

        type_errors = validate_enum_field(attribute.type, DynamoDBType, path, 'type')
        errors.extend(type_errors)

        subtype = None
        if attribute.subtype is not None:
            subtype_errors = validate_enum_field(
                attribute.subtype, AttributeSubtype, path, 'subtype'
            )
            errors.extend(subtype_errors)
            if not subtype_errors:
                subtype = AttributeSubtype(attribute.subtype)

        if type_errors:
            return errors

        dynamo_type = DynamoDBType(attribute.type)
        if subtype is not None and subtype not in SUBTYPE_COMPATIBILITY.get(dynamo_type, ()):
            compatible = sorted(s.value for s in SUBTYPE_COMPATIBILITY.get(dynamo_type, ()))
            errors.append(
                ValidationError(
                    path=f'{path}.subtype',
                    message=f"Incompatible subtype '{subtype.value}' for type "
                    f"{dynamo_type.value} on attribute '{attribute.name}'",
                    suggestion=f'Use one of: {", ".join(compatible)}'
                    if compatible
                    else f'Remove the subtype; type {dynamo_type.value} takes none',
                )
            )

        self._types.setdefault(attribute.name, dynamo_type)
        self._subtypes.setdefault(attribute.name, subtype)
        return errors

    def _validate_key_references(self) -> list[ValidationError]:
        errors = self._validate_simple_key(self._raw.hash_key, 'hash_key', 'Hash key')
        if self._raw.range_key is not None:
            errors.extend(self._validate_simple_key(self._raw.range_key, 'range_key', 'Range key'))
            if self._raw.range_key == self._raw.hash_key:
                errors.append(
                    ValidationError(
                        path='range_key',
                        message=f"Range key '{self._raw.range_key}' is the same as the hash key",
                        suggestion='Use a different attribute as the range key or remove it',
                    )
                )
        return errors

    def _validate_simple_key(self, name: str, path: str, label: str) -> list[ValidationError]:
        if name not in self._types:
            return [
                ValidationError(
                    path=path,
                    message=f"{label} '{name}' is not a declared attribute",
                    suggestion=self._suggest_attribute(name),
                )
            ]
        if self._types[name] not in KEY_ATTRIBUTE_TYPES:
            return [
                ValidationError(
                    path=path,
                    message=f"{label} '{name}' has type {self._types[name].value}; "
                    'key attributes must be S, N or B',
                    suggestion='Use a string, number or binary attribute as the key',
                )
            ]
        return []

    def _validate_secondary_indexes(self) -> list[ValidationError]:
        errors = []
        seen_names: set[str] = set()
        for i, raw_index in enumerate(self._raw.secondary_indexes):
            path = f'secondary_indexes[{i}]'
            if raw_index.name in seen_names:
                errors.append(
                    ValidationError(
                        path=f'{path}.name',
                        message=f"Duplicate index name '{raw_index.name}'",
                        suggestion='Give every secondary index a unique name',
                    )
                )
            seen_names.add(raw_index.name)
            draft = self._validate_index(raw_index, path)
            errors.extend(draft.errors)
            self._indexes.append(draft)

        counts = {index_type: 0 for index_type in IndexType}
        for draft in self._indexes:
            counts[draft.index_type] += 1
        if counts[IndexType.GSI] > MAX_GSIS_PER_TABLE:
            errors.append(
                ValidationError(
                    path='secondary_indexes',
                    message=f'Table declares {counts[IndexType.GSI]} global secondary indexes; '
                    f'the maximum is {MAX_GSIS_PER_TABLE}',
                    suggestion='Remove or merge global secondary indexes',
                )
            )
        if counts[IndexType.LSI] > MAX_LSIS_PER_TABLE:
            errors.append(
                ValidationError(
                    path='secondary_indexes',
                    message=f'Table declares {counts[IndexType.LSI]} local secondary indexes; '
                    f'the maximum is {MAX_LSIS_PER_TABLE}',
                    suggestion='Remove local secondary indexes or turn some into global ones',
                )
            )
        return errors

    def _validate_index(self, raw_index: RawSecondaryIndex, path: str) -> _IndexDraft:
        errors: list[ValidationError] = []
        if not self.sanitizer.sanitize(raw_index.name):
            errors.append(
                ValidationError(
                    path=f'{path}.name',
                    message=f"Index name '{raw_index.name}' is empty after sanitization",
                    suggestion='Use a name containing at least one letter or digit',
                )
            )

        index_type = self._parse_enum(raw_index.type, IndexType, path, 'type', errors)
        projection = self._parse_enum(
            raw_index.projection_type, ProjectionType, path, 'projection_type', errors
        )
        index_type = index_type or IndexType.GSI
        projection = projection or ProjectionType.ALL

        if index_type == IndexType.LSI:
            hash_key = self._resolve_lsi_hash_key(raw_index, path, errors)
        else:
            hash_key = self._resolve_key(
                raw_index.hash_key, raw_index.hash_key_parts, path, 'hash_key', errors
            )
            if raw_index.hash_key is None and raw_index.hash_key_parts is None:
                errors.append(
                    ValidationError(
                        path=f'{path}.hash_key',
                        message=f"Index '{raw_index.name}' declares no hash key",
                        suggestion='Set either hash_key or hash_key_parts',
                    )
                )

        range_key = self._resolve_key(
            raw_index.range_key, raw_index.range_key_parts, path, 'range_key', errors
        )
        if index_type == IndexType.LSI:
            self._validate_lsi(raw_index, range_key, path, errors)
        elif hash_key is not None and range_key is not None and hash_key.name == range_key.name:
            errors.append(
                ValidationError(
                    path=f'{path}.range_key',
                    message=f"Index '{raw_index.name}' uses '{hash_key.name}' as both hash "
                    'and range key',
                    suggestion='Use a different range key or remove it',
                )
            )

        self._validate_projection(raw_index, projection, path, errors)
        self._validate_capacity(raw_index, index_type, path, errors)

        return _IndexDraft(
            name=raw_index.name,
            index_type=index_type,
            projection_type=projection,
            hash_key=hash_key or _ResolvedKey(self._raw.hash_key),
            range_key=range_key,
            raw=raw_index,
            errors=errors,
        )

    def _resolve_lsi_hash_key(
        self, raw_index: RawSecondaryIndex, path: str, errors: list[ValidationError]
    ) -> _ResolvedKey:
        if raw_index.hash_key_parts is not None:
            errors.append(
                ValidationError(
                    path=f'{path}.hash_key_parts',
                    message='Local secondary indexes cannot declare hash_key_parts',
                    suggestion="Remove hash_key_parts; an LSI uses the table's hash key",
                )
            )
        elif raw_index.hash_key is not None and raw_index.hash_key != self._raw.hash_key:
            errors.append(
                ValidationError(
                    path=f'{path}.hash_key',
                    message=f"Local secondary index hash key '{raw_index.hash_key}' differs "
                    f"from the table hash key '{self._raw.hash_key}'",
                    suggestion='Omit hash_key or set it to the table hash key',
                )
            )
        return _ResolvedKey(self._raw.hash_key)

    def _validate_lsi(
        self,
        raw_index: RawSecondaryIndex,
        range_key: _ResolvedKey | None,
        path: str,
        errors: list[ValidationError],
    ) -> None:
        if self._raw.range_key is None:
            errors.append(
                ValidationError(
                    path=f'{path}.type',
                    message='Local secondary indexes require a table with a range key',
                    suggestion='Add a range_key to the table or make the index a GSI',
                )
            )
        if range_key is None:
            errors.append(
                ValidationError(
                    path=f'{path}.range_key',
                    message=f"Local secondary index '{raw_index.name}' requires a range key",
                    suggestion='Set range_key or range_key_parts',
                )
            )
        elif range_key.name == self._raw.range_key:
            errors.append(
                ValidationError(
                    path=f'{path}.range_key',
                    message=f"Local secondary index range key '{range_key.name}' must differ "
                    'from the table range key',
                    suggestion='Choose another attribute for the index range key',
                )
            )

    def _resolve_key(
        self,
        expression: str | None,
        raw_parts: list[RawKeyPart] | None,
        path: str,
        key_field: str,
        errors: list[ValidationError],
    ) -> _ResolvedKey | None:
        """Parse one index key declaration; exactly one of the two forms may be used."""
        if expression is not None and raw_parts is not None:
            errors.append(
                ValidationError(
                    path=f'{path}.{key_field}',
                    message=f'Only one of {key_field} and {key_field}_parts may be set',
                    suggestion=f'Remove either {key_field} or {key_field}_parts',
                )
            )
            return None

        if raw_parts is not None:
            parts = tuple(CompositeKeyPart(p.value, p.is_constant) for p in raw_parts)
            parts_path = f'{path}.{key_field}_parts'
        elif expression is not None and self.resolver.is_composite(expression):
            parts = self.resolver.parse(expression)
            parts_path = f'{path}.{key_field}'
        elif expression is not None:
            key_errors = self._validate_simple_key(
                expression, f'{path}.{key_field}', key_field.replace('_', ' ').capitalize()
            )
            errors.extend(key_errors)
            return _ResolvedKey(expression)
        else:
            return None

        part_errors = self.resolver.validate_parts(parts, self._types, parts_path)
        errors.extend(part_errors)
        return _ResolvedKey(self.resolver.physical_name(parts), parts)

    def _validate_projection(
        self,
        raw_index: RawSecondaryIndex,
        projection: ProjectionType,
        path: str,
        errors: list[ValidationError],
    ) -> None:
        non_key_attributes = raw_index.non_key_attributes or []
        if projection != ProjectionType.INCLUDE:
            if non_key_attributes:
                errors.append(
                    ValidationError(
                        path=f'{path}.non_key_attributes',
                        message=f'Projection type {projection.value} cannot declare '
                        'non_key_attributes',
                        suggestion="Remove non_key_attributes or use projection_type 'INCLUDE'",
                    )
                )
            return

        if not non_key_attributes:
            errors.append(
                ValidationError(
                    path=f'{path}.non_key_attributes',
                    message='INCLUDE projection requires non-empty non_key_attributes',
                    suggestion='List the attributes to project into the index',
                )
            )
        for j, name in enumerate(non_key_attributes):
            if name not in self._types:
                errors.append(
                    ValidationError(
                        path=f'{path}.non_key_attributes[{j}]',
                        message=f"Projected attribute '{name}' is not a declared attribute",
                        suggestion=self._suggest_attribute(name),
                    )
                )

    def _validate_capacity(
        self,
        raw_index: RawSecondaryIndex,
        index_type: IndexType,
        path: str,
        errors: list[ValidationError],
    ) -> None:
        for capacity_field in ('read_capacity', 'write_capacity'):
            value = getattr(raw_index, capacity_field)
            if value is None:
                continue
            if index_type == IndexType.LSI:
                errors.append(
                    ValidationError(
                        path=f'{path}.{capacity_field}',
                        message='Local secondary indexes share the table capacity',
                        suggestion=f'Remove {capacity_field} from the index',
                    )
                )
            elif value <= 0:
                errors.append(
                    ValidationError(
                        path=f'{path}.{capacity_field}',
                        message=f'must be greater than 0. {capacity_field}: {value}',
                        suggestion='Use a positive capacity or omit it for on-demand tables',
                    )
                )

    def _validate_identifiers(self) -> list[ValidationError]:
        errors = []
        self._table_identifier = self.sanitizer.sanitize(self._raw.table_name)
        if not self._table_identifier:
            errors.append(
                ValidationError(
                    path='table_name',
                    message=f"Table name '{self._raw.table_name}' is empty after sanitization",
                    suggestion='Use a name containing at least one letter or digit',
                )
            )
        else:
            self._warn_if_rewritten(self._raw.table_name, 'table_name')

        for group, attributes in self._attribute_groups():
            for i, attribute in enumerate(attributes):
                errors.extend(
                    self._claim_identifier(attribute.name, f'{group}[{i}].name', self._identifiers)
                )
        for i, raw_index in enumerate(self._raw.secondary_indexes):
            errors.extend(
                self._claim_identifier(
                    raw_index.name, f'secondary_indexes[{i}].name', self._index_identifiers
                )
            )
        return errors

    def _claim_identifier(
        self, raw_name: str, path: str, claimed: dict[str, str]
    ) -> list[ValidationError]:
        identifier = self.sanitizer.sanitize(raw_name)
        owner = claimed.get(identifier)
        if owner is not None and owner != raw_name:
            return [
                ValidationError(
                    path=path,
                    message=f"Names '{owner}' and '{raw_name}' both map to identifier "
                    f"'{identifier}'",
                    suggestion='Rename one of them so their identifiers differ',
                )
            ]
        claimed[identifier] = raw_name
        self._warn_if_rewritten(raw_name, path)
        return []

    def _warn_if_rewritten(self, raw_name: str, path: str) -> None:
        base = self.sanitizer.normalize(raw_name)
        identifier = self.sanitizer.sanitize(raw_name)
        if base != identifier:
            logger.warning(f"Identifier '{base}' is reserved; using '{identifier}' for {path}")
            self.result.add_warning(
                path,
                f"'{raw_name}' collides with a reserved word and is rewritten to '{identifier}'",
            )

    # ---------------------------------------------------------------- assembly

    def _parse_enum(
        self, value: str, enum_class: type, path: str, field_name: str, errors: list
    ) -> Any:
        normalized = value.strip().upper()
        enum_errors = validate_enum_field(normalized, enum_class, path, field_name)
        if enum_errors:
            errors.extend(enum_errors)
            return None
        return enum_class(normalized)

    def _suggest_attribute(self, name: str) -> str:
        declared = list(self._types)
        matches = difflib.get_close_matches(name, declared, n=1)
        if matches:
            return f"Did you mean '{matches[0]}'? Declared attributes: {', '.join(declared)}"
        return f'Declare the attribute or use one of: {", ".join(declared)}'

    def _build_attribute(self, raw: RawAttribute) -> Attribute:
        return Attribute(
            name=raw.name,
            type=self._types[raw.name],
            subtype=self._subtypes[raw.name],
            identifier=self.sanitizer.sanitize(raw.name),
        )

    def _build_schema(self) -> TableSchema:
        raw = self._raw
        attributes = tuple(self._build_attribute(a) for a in raw.attributes)
        common_attributes = tuple(self._build_attribute(a) for a in raw.common_attributes)

        indexes = tuple(
            SecondaryIndex(
                name=draft.name,
                index_type=draft.index_type,
                hash_key=draft.hash_key.name,
                hash_key_parts=draft.hash_key.parts,
                range_key=draft.range_key.name if draft.range_key else None,
                range_key_parts=draft.range_key.parts if draft.range_key else (),
                projection_type=draft.projection_type,
                non_key_attributes=tuple(draft.raw.non_key_attributes or ()),
                read_capacity=draft.raw.read_capacity,
                write_capacity=draft.raw.write_capacity,
                identifier=self.sanitizer.sanitize(draft.name),
            )
            for draft in self._indexes
        )

        index_key_names = {name for index in indexes for name in index.key_attribute_names()}
        fields_map = {
            attribute.name: FieldInfo(
                name=attribute.name,
                dynamo_type=attribute.type,
                allowed_operators=allowed_operators(attribute.type),
                is_key=attribute.name in (raw.hash_key, raw.range_key),
                is_hash_key=attribute.name == raw.hash_key,
                is_range_key=attribute.name == raw.range_key,
                is_index_key=attribute.name in index_key_names,
                subtype=attribute.subtype,
                identifier=attribute.identifier,
            )
            for attribute in attributes + common_attributes
        }

        return TableSchema(
            table_name=raw.table_name,
            hash_key=raw.hash_key,
            range_key=raw.range_key,
            attributes=attributes,
            common_attributes=common_attributes,
            secondary_indexes=indexes,
            fields_map=MappingProxyType(fields_map),
            identifier=self._table_identifier,
        )


def validate_schema(raw: Any, sanitizer: IdentifierSanitizer | None = None) -> ValidationResult:
    """Validate a decoded description without keeping the built schema."""
    return SchemaValidator(sanitizer=sanitizer).validate(raw)
