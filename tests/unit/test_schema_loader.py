"""Unit tests for SchemaLoader class and load_and_validate."""

import pytest
from dynamo_schema_planner.core.file_utils import FileUtils
from dynamo_schema_planner.core.schema_definitions import TableSchema
from dynamo_schema_planner.core.schema_loader import SchemaLoader, load_and_validate
from dynamo_schema_planner.core.validation_utils import SchemaValidationError
from tests.conftest import INVALID_INDEX_SCHEMA, MALFORMED_SCHEMA, POSTS_SCHEMA, USERS_SCHEMA
from unittest.mock import patch


@pytest.mark.unit
class TestLoadAndValidate:
    """Unit tests for load_and_validate."""

    def test_valid_description(self, users_schema_data):
        """Test a valid description yields a TableSchema."""
        schema = load_and_validate(users_schema_data)
        assert isinstance(schema, TableSchema)
        assert schema.table_name == 'Users'
        assert [i.name for i in schema.secondary_indexes] == ['by_status', 'by_email']

    def test_idempotent(self, posts_schema_data):
        """Test loading the same description twice gives field-for-field equal schemas."""
        assert load_and_validate(posts_schema_data) == load_and_validate(posts_schema_data)

    def test_invalid_description_raises(self, schema_factory):
        """Test a failure raises with the full result and no schema."""
        with pytest.raises(SchemaValidationError) as exc_info:
            load_and_validate(schema_factory(hash_key='nope'))
        assert exc_info.value.result.error_paths() == ['hash_key']
        assert "Hash key 'nope' is not a declared attribute" in str(exc_info.value)

    def test_error_is_a_value_error(self):
        """Test callers can catch schema failures as ValueError."""
        with pytest.raises(ValueError, match='Schema validation failed'):
            load_and_validate('not a schema')


@pytest.mark.unit
class TestSchemaLoader:
    """Unit tests for SchemaLoader."""

    def test_load_users_schema(self):
        """Test loading a schema file."""
        loader = SchemaLoader(str(USERS_SCHEMA))
        schema = loader.load_schema()
        assert schema.hash_key == 'user_id'
        assert schema.range_key is None

    def test_load_posts_schema(self):
        """Test loading a schema file with composite keys."""
        schema = SchemaLoader(str(POSTS_SCHEMA)).load_schema()
        assert schema.get_index('by_tenant').hash_key == 'TENANT#tenant_id'

    def test_schema_property_caches(self):
        """Test the schema is read from disk only once."""
        loader = SchemaLoader(str(USERS_SCHEMA))
        with patch.object(
            FileUtils, 'load_json_file', wraps=FileUtils.load_json_file
        ) as mock_load:
            first = loader.schema
            second = loader.schema
        assert first is second
        assert mock_load.call_count == 1

    def test_file_not_found(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        loader = SchemaLoader(str(tmp_path / 'missing.json'))
        with pytest.raises(FileNotFoundError, match='Schema file not found'):
            loader.load_schema()

    def test_malformed_json(self):
        """Test invalid JSON raises ValueError."""
        with pytest.raises(ValueError, match='Invalid JSON in Schema file'):
            SchemaLoader(str(MALFORMED_SCHEMA)).load_schema()

    def test_invalid_schema_file(self):
        """Test an invalid description raises SchemaValidationError."""
        loader = SchemaLoader(str(INVALID_INDEX_SCHEMA))
        with pytest.raises(SchemaValidationError) as exc_info:
            loader.load_schema()
        assert len(exc_info.value.result.errors) == 6

    def test_sanitizer_is_passed_through(self, tmp_path):
        """Test a custom sanitizer is used for identifiers."""

        class UpperSanitizer:
            def sanitize(self, raw_name):
                return raw_name.upper()

            def normalize(self, raw_name):
                return raw_name.upper()

            def is_reserved(self, name):
                return False

        schema = SchemaLoader(str(USERS_SCHEMA), sanitizer=UpperSanitizer()).load_schema()
        assert schema.identifier == 'USERS'
        assert schema.get_attribute('user_id').identifier == 'USER_ID'


@pytest.mark.unit
class TestFileUtils:
    """Unit tests for FileUtils."""

    def test_load_json_file(self, tmp_path):
        """Test a JSON file is parsed."""
        path = tmp_path / 'data.json'
        path.write_text('{"a": 1}', encoding='utf-8')
        assert FileUtils.load_json_file(str(path)) == {'a': 1}

    def test_load_json_directory(self, tmp_path):
        """Test a directory is not a file."""
        with pytest.raises(FileNotFoundError, match='Config file not found'):
            FileUtils.load_json_file(str(tmp_path), 'Config')

    def test_load_json_bad_encoding(self, tmp_path):
        """Test undecodable content raises ValueError."""
        path = tmp_path / 'data.json'
        path.write_bytes(b'\xff\xfe\x00')
        with pytest.raises(ValueError, match='Error reading File file'):
            FileUtils.load_json_file(str(path))

    def test_resolve_within(self, tmp_path):
        """Test paths inside the base directory resolve."""
        path = tmp_path / 'a.json'
        path.write_text('{}', encoding='utf-8')
        assert FileUtils.resolve_within(path, tmp_path) == path.resolve()

    def test_resolve_within_traversal(self, tmp_path):
        """Test paths escaping the base directory are rejected."""
        base = tmp_path / 'base'
        base.mkdir()
        with pytest.raises(ValueError, match='Path traversal detected'):
            FileUtils.resolve_within(base / '..' / 'other.json', base)

    def test_resolve_within_missing(self, tmp_path):
        """Test missing files inside the base directory."""
        with pytest.raises(FileNotFoundError, match='Config file not found'):
            FileUtils.resolve_within(tmp_path / 'missing.json', tmp_path, 'Config')
