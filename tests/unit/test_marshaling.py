"""Unit tests for item marshaling and record extraction."""

import pytest
from decimal import Decimal
from dynamo_schema_planner.core.marshaling import (
    build_add_to_set,
    build_increment_expression,
    build_remove_from_set,
    build_update_expression,
    extract_non_key_attributes,
    extract_record,
    extract_stream_record,
    is_field_modified,
    marshal_item,
)
from dynamo_schema_planner.core.schema_loader import load_and_validate
from dynamo_schema_planner.core.validation_utils import KeyBuildError, ValueEncodingError


@pytest.fixture
def metrics_schema(schema_factory):
    """Schema with sized integer subtypes."""
    return load_and_validate(
        schema_factory(
            attributes=[
                {'name': 'session_id', 'type': 'S'},
                {'name': 'level', 'type': 'N', 'subtype': 'int8'},
                {'name': 'ratings', 'type': 'NS', 'subtype': 'uint8'},
                {'name': 'amount', 'type': 'N', 'subtype': 'decimal'},
                {'name': 'active', 'type': 'BOOL'},
            ]
        )
    )


@pytest.mark.unit
class TestMarshalItem:
    """Unit tests for marshal_item."""

    def test_marshal_with_composite_keys(self, posts_schema):
        """Test composite index attributes are added and None values skipped."""
        item = {
            'user_id': 'u1',
            'created_at': 1700000000,
            'category': 'tech',
            'is_published': '1',
            'title': 'Hello',
            'tags': {'b', 'a'},
            'summary': None,
        }
        assert marshal_item(posts_schema, item) == {
            'user_id': {'S': 'u1'},
            'created_at': {'N': '1700000000'},
            'category': {'S': 'tech'},
            'is_published': {'S': '1'},
            'title': {'S': 'Hello'},
            'tags': {'SS': ['a', 'b']},
            'category#is_published': {'S': 'tech#1'},
        }

    def test_missing_key_attribute(self, posts_schema):
        """Test items need every primary key attribute."""
        with pytest.raises(KeyBuildError, match="Item is missing key attribute 'created_at'"):
            marshal_item(posts_schema, {'user_id': 'u1'})

    def test_unencodable_value(self, users_schema):
        """Test encoding failures name the attribute."""
        with pytest.raises(ValueEncodingError, match="attribute 'tags'"):
            marshal_item(users_schema, {'user_id': 'u1', 'tags': set()})

    def test_extract_non_key_attributes(self, posts_schema):
        """Test key attributes are stripped."""
        item = {'user_id': 'u1', 'created_at': 1, 'title': 'x'}
        assert extract_non_key_attributes(posts_schema, item) == {'title': 'x'}


@pytest.mark.unit
class TestBuildUpdateExpression:
    """Unit tests for build_update_expression."""

    def test_set_and_remove(self, posts_schema):
        """Test SET for values and REMOVE for None, in the given order."""
        update = build_update_expression(
            posts_schema, {'title': 'New', 'views': 3, 'summary': None}
        )
        assert update.expression == 'SET #attr0 = :val0, #attr1 = :val1 REMOVE #attr2'
        assert update.attribute_names == {
            '#attr0': 'title',
            '#attr1': 'views',
            '#attr2': 'summary',
        }
        assert update.attribute_values == {':val0': {'S': 'New'}, ':val1': {'N': '3'}}
        assert update.to_request() == {
            'UpdateExpression': update.expression,
            'ExpressionAttributeNames': update.attribute_names,
            'ExpressionAttributeValues': update.attribute_values,
        }

    def test_remove_only(self, posts_schema):
        """Test a removal-only update has no value map."""
        update = build_update_expression(posts_schema, {'summary': None})
        assert update.expression == 'REMOVE #attr0'
        assert 'ExpressionAttributeValues' not in update.to_request()

    def test_empty_update(self, posts_schema):
        """Test an empty update is rejected."""
        with pytest.raises(ValueError, match='No attributes to update'):
            build_update_expression(posts_schema, {})

    def test_key_update(self, posts_schema):
        """Test primary key attributes cannot be updated."""
        with pytest.raises(ValueError, match='Primary key attributes cannot be updated: user_id'):
            build_update_expression(posts_schema, {'user_id': 'u2', 'title': 'x'})

@pytest.mark.unit
class TestAtomicUpdates:
    """Unit tests for counter and set membership updates."""

    def test_increment_default(self, posts_schema):
        """Test the default increment adds one."""
        update = build_increment_expression(posts_schema, 'views')
        assert update.to_request() == {
            'UpdateExpression': 'ADD #attr0 :val0',
            'ExpressionAttributeNames': {'#attr0': 'views'},
            'ExpressionAttributeValues': {':val0': {'N': '1'}},
        }

    def test_decrement_and_undeclared(self, posts_schema):
        """Test negative amounts and undeclared counters."""
        update = build_increment_expression(posts_schema, 'likes', -2)
        assert update.attribute_names == {'#attr0': 'likes'}
        assert update.attribute_values == {':val0': {'N': '-2'}}

    @pytest.mark.parametrize('amount', [True, '3', None])
    def test_increment_rejects_non_numbers(self, posts_schema, amount):
        """Test the amount must be a number."""
        with pytest.raises(ValueError, match='Increment amount must be a number'):
            build_increment_expression(posts_schema, 'views', amount)

    def test_increment_rejects_non_number_attribute(self, posts_schema):
        """Test declared non-number attributes cannot be incremented."""
        with pytest.raises(ValueError, match="Cannot increment attribute 'title' of type S"):
            build_increment_expression(posts_schema, 'title')

    def test_increment_rejects_key(self, posts_schema):
        """Test key attributes cannot be incremented."""
        with pytest.raises(ValueError, match='Primary key attributes cannot be updated'):
            build_increment_expression(posts_schema, 'created_at')

    def test_add_to_string_set(self, posts_schema):
        """Test members are encoded as one sorted string set."""
        update = build_add_to_set(posts_schema, 'tags', ['b', 'a', 'b'])
        assert update.expression == 'ADD #attr0 :val0'
        assert update.attribute_values == {':val0': {'SS': ['a', 'b']}}

    def test_remove_from_number_set(self, metrics_schema):
        """Test DELETE removes number set members."""
        update = build_remove_from_set(metrics_schema, 'ratings', {10, 9})
        assert update.expression == 'DELETE #attr0 :val0'
        assert update.attribute_names == {'#attr0': 'ratings'}
        assert update.attribute_values == {':val0': {'NS': ['9', '10']}}

    def test_empty_set_values(self, posts_schema):
        """Test an empty collection is rejected."""
        with pytest.raises(ValueError, match="Set values for 'tags' cannot be empty"):
            build_add_to_set(posts_schema, 'tags', [])

    def test_string_is_not_a_set(self, posts_schema):
        """Test a bare string is not split into characters."""
        with pytest.raises(ValueError, match='must be a set or list'):
            build_add_to_set(posts_schema, 'tags', 'abc')

    def test_set_type_mismatch(self, posts_schema):
        """Test numbers cannot be added to a declared string set."""
        with pytest.raises(ValueError, match="'tags' is declared as SS, values encode as NS"):
            build_add_to_set(posts_schema, 'tags', [1, 2])

    def test_mixed_members(self, posts_schema):
        """Test members of different kinds cannot form one set."""
        with pytest.raises(ValueEncodingError, match="attribute 'labels'"):
            build_remove_from_set(posts_schema, 'labels', ['a', 1])



@pytest.mark.unit
class TestExtractRecord:
    """Unit tests for extract_record."""

    def test_complete_record(self, posts_schema):
        """Test declared attributes are converted by subtype."""
        result = extract_record(
            posts_schema,
            {
                'user_id': {'S': 'u1'},
                'created_at': {'N': '1700000000'},
                'views': {'N': '12'},
                'score': {'N': '4.5'},
                'tags': {'SS': ['a']},
                'updated_at': {'N': '1.25'},
                'extra': {'S': 'x'},
            },
        )
        assert result.is_complete
        assert result.values == {
            'user_id': 'u1',
            'created_at': 1700000000,
            'views': 12,
            'score': 4.5,
            'tags': {'a'},
            'updated_at': Decimal('1.25'),
            'extra': 'x',
        }
        assert isinstance(result.values['views'], int)

    def test_discarded_fields(self, posts_schema):
        """Test unconvertible fields are reported rather than raised."""
        result = extract_record(
            posts_schema,
            {
                'user_id': {'S': 'u1'},
                'views': {'N': '1.5'},
                'title': {'N': '3'},
                'created_at': {'N': 'abc'},
                'extra': {'Q': 'x'},
            },
        )
        assert not result.is_complete
        assert result.values == {'user_id': 'u1'}
        assert result.discarded_names() == ['views', 'title', 'created_at', 'extra']
        reasons = {d.name: d.reason for d in result.discarded_fields}
        assert reasons['views'] == '1.5 is not an integer'
        assert reasons['title'] == 'expected type S, found N'
        assert reasons['created_at'].startswith('Invalid number in attribute value')
        assert reasons['extra'].startswith('Cannot decode attribute value')

    def test_integer_bounds(self, metrics_schema):
        """Test sized integer subtypes are range checked."""
        result = extract_record(
            metrics_schema,
            {
                'level': {'N': '300'},
                'ratings': {'NS': ['1', '-1']},
                'amount': {'N': '9.99'},
                'active': {'BOOL': True},
            },
        )
        reasons = {d.name: d.reason for d in result.discarded_fields}
        assert reasons == {
            'level': '300 is out of range for int8',
            'ratings': '-1 is out of range for uint8',
        }
        assert result.values == {'amount': Decimal('9.99'), 'active': True}

    def test_number_set_conversion(self, metrics_schema):
        """Test number set elements follow the subtype."""
        result = extract_record(metrics_schema, {'ratings': {'NS': ['1', '2']}})
        assert result.values == {'ratings': {1, 2}}


@pytest.mark.unit
class TestStreamRecords:
    """Unit tests for stream record decoding."""

    def setup_method(self):
        """Set up a MODIFY record."""
        self.record = {
            'eventName': 'MODIFY',
            'dynamodb': {
                'Keys': {'user_id': {'S': 'u1'}, 'created_at': {'N': '1'}},
                'NewImage': {
                    'user_id': {'S': 'u1'},
                    'created_at': {'N': '1'},
                    'title': {'S': 'New'},
                    'views': {'N': '5'},
                    'tags': {'SS': ['b', 'a']},
                },
                'OldImage': {
                    'user_id': {'S': 'u1'},
                    'created_at': {'N': '1'},
                    'title': {'S': 'Old'},
                    'views': {'N': '5'},
                    'tags': {'SS': ['a', 'b']},
                },
            },
        }

    def test_extract_both_images(self, posts_schema):
        """Test both images are decoded through the schema."""
        record = extract_stream_record(posts_schema, self.record)
        assert record.event_name == 'MODIFY'
        assert record.new_image.values['title'] == 'New'
        assert record.new_image.values['views'] == 5
        assert record.old_image is not None
        assert record.old_image.values['title'] == 'Old'

    def test_insert_without_old_image(self, posts_schema):
        """Test INSERT records have no old image."""
        del self.record['dynamodb']['OldImage']
        self.record['eventName'] = 'INSERT'
        record = extract_stream_record(posts_schema, self.record)
        assert record.old_image is None
        assert record.new_image.is_complete

    def test_bad_fields_are_reported(self, posts_schema):
        """Test image fields that fail conversion are discarded."""
        self.record['dynamodb']['NewImage']['views'] = {'N': '2.5'}
        record = extract_stream_record(posts_schema, self.record)
        assert record.new_image.discarded_names() == ['views']

    def test_missing_new_image(self, posts_schema):
        """Test a record without a new image is rejected."""
        with pytest.raises(ValueError, match='Stream record has no new image'):
            extract_stream_record(posts_schema, {'eventName': 'REMOVE', 'dynamodb': {}})

    def test_field_modified(self):
        """Test only changed values count as modifications."""
        assert is_field_modified(self.record, 'title')
        assert not is_field_modified(self.record, 'views')
        assert not is_field_modified(self.record, 'tags')

    def test_field_added_is_not_modified(self):
        """Test a field has to be present in both images."""
        self.record['dynamodb']['NewImage']['summary'] = {'S': 'x'}
        assert not is_field_modified(self.record, 'summary')

    def test_only_modify_events(self):
        """Test other event types never report modifications."""
        self.record['eventName'] = 'INSERT'
        assert not is_field_modified(self.record, 'title')
        del self.record['dynamodb']['OldImage']
        self.record['eventName'] = 'MODIFY'
        assert not is_field_modified(self.record, 'title')
