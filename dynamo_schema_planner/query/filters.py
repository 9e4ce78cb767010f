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

"""Filter methods shared by the query and scan builders."""

from abc import ABC, abstractmethod
from dynamo_schema_planner.core.schema_definitions import OperatorType
from typing import Any


class FilterMethodsMixin(ABC):
    """Convenience ``filter_*`` methods; the host class implements ``filter``.

    Predicates added through these methods are evaluated after the read and
    never become part of a key condition.
    """

    @abstractmethod
    def filter(self, attribute: str, operator: 'OperatorType | str', *values: Any):
        """Add a predicate that is only ever used as a filter condition."""
        pass

    def filter_eq(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.EQ, value)

    def filter_ne(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.NE, value)

    def filter_gt(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.GT, value)

    def filter_gte(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.GTE, value)

    def filter_lt(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.LT, value)

    def filter_lte(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.LTE, value)

    def filter_between(self, attribute: str, start: Any, end: Any):
        return self.filter(attribute, OperatorType.BETWEEN, start, end)

    def filter_in(self, attribute: str, *values: Any):
        return self.filter(attribute, OperatorType.IN, *values)

    def filter_not_in(self, attribute: str, *values: Any):
        return self.filter(attribute, OperatorType.NOT_IN, *values)

    def filter_contains(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.CONTAINS, value)

    def filter_not_contains(self, attribute: str, value: Any):
        return self.filter(attribute, OperatorType.NOT_CONTAINS, value)

    def filter_begins_with(self, attribute: str, prefix: str):
        return self.filter(attribute, OperatorType.BEGINS_WITH, prefix)

    def filter_exists(self, attribute: str):
        return self.filter(attribute, OperatorType.EXISTS)

    def filter_not_exists(self, attribute: str):
        return self.filter(attribute, OperatorType.NOT_EXISTS)
