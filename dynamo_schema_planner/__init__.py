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

"""Schema validation and query planning for DynamoDB-style wide-column tables."""

import os
import sys
from dynamo_schema_planner.core.index_selector import (
    IndexSelector,
    Predicate,
    QueryPlan,
    plan_query,
)
from dynamo_schema_planner.core.operators import allowed_operators
from dynamo_schema_planner.core.schema_definitions import OperatorType, TableSchema
from dynamo_schema_planner.core.schema_loader import SchemaLoader, load_and_validate
from dynamo_schema_planner.core.validation_utils import SchemaValidationError
from dynamo_schema_planner.query.query_builder import QueryBuilder
from dynamo_schema_planner.query.scan_builder import ScanBuilder
from importlib.metadata import PackageNotFoundError, version
from loguru import logger


try:
    __version__ = version('dynamo-schema-planner')
except PackageNotFoundError:
    __version__ = '0.0.0+dev'

LOG_LEVEL_ENV_VAR = 'DYNAMO_PLANNER_LOG_LEVEL'

# Silent until configure_logging() or logger.enable() is called
logger.disable('dynamo_schema_planner')


def configure_logging(level: str | None = None) -> None:
    """Route this package's log records to stderr.

    Args:
        level: Minimum level to emit. Defaults to the DYNAMO_PLANNER_LOG_LEVEL
            environment variable, or WARNING when it is unset.
    """
    logger.remove()
    logger.add(sys.stderr, level=level or os.getenv(LOG_LEVEL_ENV_VAR, 'WARNING'))
    logger.enable('dynamo_schema_planner')


__all__ = [
    'IndexSelector',
    'OperatorType',
    'Predicate',
    'QueryBuilder',
    'QueryPlan',
    'ScanBuilder',
    'SchemaLoader',
    'SchemaValidationError',
    'TableSchema',
    'allowed_operators',
    'configure_logging',
    'load_and_validate',
    'plan_query',
]
