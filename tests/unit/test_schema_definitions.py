"""Unit tests for schema_definitions module."""

import pytest
from dynamo_schema_planner.core.schema_definitions import (
    Attribute,
    AttributeSubtype,
    CompositeKeyPart,
    DynamoDBType,
    IndexType,
    OperatorType,
    SecondaryIndex,
    get_enum_values,
    is_valid_enum_value,
    suggest_enum_value,
    validate_enum_field,
)
from dynamo_schema_planner.core.schema_loader import load_and_validate


@pytest.mark.unit
class TestEnumHelpers:
    """Unit tests for enum validation helpers."""

    def test_get_enum_values(self):
        """Test enum values are listed in declaration order."""
        assert get_enum_values(IndexType) == ['GSI', 'LSI']

    def test_is_valid_enum_value(self):
        """Test membership is checked on values, case-sensitively."""
        assert is_valid_enum_value('SS', DynamoDBType)
        assert not is_valid_enum_value('ss', DynamoDBType)

    def test_suggest_close_match(self):
        """Test a close value is suggested."""
        assert suggest_enum_value('GSX', IndexType).startswith("Did you mean 'GSI'?")

    def test_suggest_case_insensitive_match(self):
        """Test a case-only difference is suggested."""
        assert suggest_enum_value('bool', DynamoDBType).startswith("Did you mean 'BOOL'?")

    def test_suggest_without_match(self):
        """Test the valid options are listed when nothing is close."""
        suggestion = suggest_enum_value('zzzzzz', IndexType)
        assert suggestion == 'Valid options: GSI, LSI'

    def test_validate_enum_field_invalid(self):
        """Test an invalid value is reported at path.field."""
        errors = validate_enum_field('STRING', DynamoDBType, 'attributes[0]', 'type')
        assert len(errors) == 1
        assert errors[0].path == 'attributes[0].type'
        assert errors[0].message == "Invalid type value 'STRING'"

    def test_validate_enum_field_non_string(self):
        """Test a non-string value is reported."""
        errors = validate_enum_field(3, DynamoDBType, 'attributes[0]', 'type')
        assert errors[0].message == "Field 'type' must be a string, got int"

    def test_validate_enum_field_valid(self):
        """Test a valid value produces no errors."""
        assert validate_enum_field('N', DynamoDBType, 'attributes[0]', 'type') == []


@pytest.mark.unit
class TestOperatorType:
    """Unit tests for OperatorType.from_string."""

    @pytest.mark.parametrize(
        'text,expected',
        [
            ('EQ', OperatorType.EQ),
            ('between', OperatorType.BETWEEN),
            (' begins_with ', OperatorType.BEGINS_WITH),
            ('=', OperatorType.EQ),
            ('!=', OperatorType.NE),
            ('<>', OperatorType.NE),
            ('>=', OperatorType.GTE),
            (OperatorType.IN, OperatorType.IN),
        ],
    )
    def test_from_string(self, text, expected):
        """Test names in any case, symbols and members resolve."""
        assert OperatorType.from_string(text) == expected

    def test_unknown_operator(self):
        """Test an unknown operator raises with a suggestion."""
        with pytest.raises(ValueError, match="Unknown operator 'BETWEN'. Did you mean 'BETWEEN'"):
            OperatorType.from_string('BETWEN')


@pytest.mark.unit
class TestModel:
    """Unit tests for the immutable schema model."""

    def test_subtype_kinds(self):
        """Test integer and float subtype classification."""
        assert AttributeSubtype.UINT16.is_integer
        assert AttributeSubtype.FLOAT32.is_float
        assert not AttributeSubtype.DECIMAL.is_integer
        assert not AttributeSubtype.STRING.is_float

    @pytest.mark.parametrize(
        'dynamo_type,subtype,expected',
        [
            (DynamoDBType.STRING, None, 'str'),
            (DynamoDBType.NUMBER, None, 'Decimal'),
            (DynamoDBType.NUMBER, AttributeSubtype.INT32, 'int'),
            (DynamoDBType.NUMBER, AttributeSubtype.FLOAT64, 'float'),
            (DynamoDBType.NUMBER_SET, AttributeSubtype.INT, 'set[int]'),
            (DynamoDBType.MAP, None, 'dict[str, Any]'),
        ],
    )
    def test_python_type(self, dynamo_type, subtype, expected):
        """Test the annotation an emitter uses for each attribute."""
        assert Attribute('a', dynamo_type, subtype).python_type == expected

    def test_composite_key_part_str(self):
        """Test parts render in description notation."""
        assert str(CompositeKeyPart('USER', is_constant=True)) == 'const:USER'
        assert str(CompositeKeyPart('user_id')) == 'var:user_id'

    def test_index_key_attribute_names(self):
        """Test composite keys contribute only their attribute parts."""
        index = SecondaryIndex(
            name='by_tenant',
            hash_key='TENANT#tenant_id',
            hash_key_parts=(CompositeKeyPart('TENANT', True), CompositeKeyPart('tenant_id')),
            range_key='created_at',
        )
        assert index.has_composite_hash_key
        assert not index.has_composite_range_key
        assert index.key_attribute_names() == ('tenant_id', 'created_at')
        assert index.is_global

    def test_table_schema_lookups(self, posts_schema):
        """Test attribute and index lookups on a validated schema."""
        assert posts_schema.get_attribute('updated_at').type == DynamoDBType.NUMBER
        assert posts_schema.get_attribute('missing') is None
        assert posts_schema.get_index('by_views').is_local
        assert posts_schema.get_index('missing') is None
        assert posts_schema.key_names() == ('user_id', 'created_at')
        assert [i.name for i in posts_schema.local_indexes] == ['by_views']
        assert len(posts_schema.global_indexes) == 3

    def test_table_schema_names(self, posts_schema):
        """Test module and class names derive from the sanitized table name."""
        assert posts_schema.module_name == 'blog_posts'
        assert posts_schema.class_name == 'BlogPosts'

    def test_table_schema_is_frozen(self, users_schema):
        """Test the schema cannot be mutated after load."""
        with pytest.raises(AttributeError):
            users_schema.table_name = 'Other'
        with pytest.raises(TypeError):
            users_schema.fields_map['email'] = None

    def test_table_schema_is_hashable(self, users_schema, users_schema_data):
        """Test equal schemas hash alike and can key a cache."""
        reloaded = load_and_validate(users_schema_data)
        assert reloaded == users_schema
        assert hash(reloaded) == hash(users_schema)
        cache = {users_schema: 'planner'}
        assert cache[reloaded] == 'planner'
