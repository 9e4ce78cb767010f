"""Shared fixtures for dynamo_schema_planner tests."""

import copy
import json
import pytest
from dynamo_schema_planner.core.schema_loader import load_and_validate
from pathlib import Path


# ============================================================================
# MODULE CONSTANTS
# ============================================================================

FIXTURES_DIR = Path(__file__).parent / 'fixtures'
VALID_SCHEMAS_DIR = FIXTURES_DIR / 'valid_schemas'
INVALID_SCHEMAS_DIR = FIXTURES_DIR / 'invalid_schemas'

USERS_SCHEMA = VALID_SCHEMAS_DIR / 'users_schema.json'
POSTS_SCHEMA = VALID_SCHEMAS_DIR / 'posts_schema.json'

INVALID_INDEX_SCHEMA = INVALID_SCHEMAS_DIR / 'invalid_index_schema.json'
MALFORMED_SCHEMA = INVALID_SCHEMAS_DIR / 'malformed.json'


def load_fixture(path: Path) -> dict:
    """Read a fixture description from disk."""
    with open(path, encoding='utf-8') as f:
        return json.load(f)


# ============================================================================
# RAW DESCRIPTIONS
# ============================================================================


@pytest.fixture
def minimal_schema_data():
    """Smallest valid description: a hash key and one attribute."""
    return {
        'table_name': 'Sessions',
        'hash_key': 'session_id',
        'attributes': [{'name': 'session_id', 'type': 'S'}],
    }


@pytest.fixture
def users_schema_data():
    """Raw users description (hash key only, two simple GSIs)."""
    return load_fixture(USERS_SCHEMA)


@pytest.fixture
def posts_schema_data():
    """Raw posts description (range key, composite GSIs, an LSI)."""
    return load_fixture(POSTS_SCHEMA)


@pytest.fixture
def schema_factory(minimal_schema_data):
    """Build a description from the minimal one with overrides applied."""

    def _factory(**overrides):
        data = copy.deepcopy(minimal_schema_data)
        data.update(overrides)
        return data

    return _factory


# ============================================================================
# VALIDATED SCHEMAS
# ============================================================================


@pytest.fixture
def users_schema(users_schema_data):
    """Validated users TableSchema."""
    return load_and_validate(users_schema_data)


@pytest.fixture
def posts_schema(posts_schema_data):
    """Validated posts TableSchema."""
    return load_and_validate(posts_schema_data)
