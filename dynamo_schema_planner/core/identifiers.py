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

"""Identifier sanitization for names derived from a table description.

Attribute, index and table names come from user input and end up as
identifiers in generated code. The sanitizer turns them into safe snake_case
identifiers and rewrites reserved words of the target language.
"""

import re
from dynamo_schema_planner.core.language_config import LanguageConfig, LanguageConfigLoader
from typing import Protocol


def to_snake_case(camel_case_str: str) -> str:
    """Convert CamelCase to snake_case.

    Also handles hyphens by replacing them with underscores.

    Examples:
        - 'CamelCase' -> 'camel_case'
        - 'Events-ByDate' -> 'events_by_date'
        - 'userID' -> 'user_id'
    """
    s0 = camel_case_str.replace('-', '_')
    s1 = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', s0)
    s2 = re.sub('([a-z0-9])([A-Z])', r'\1_\2', s1).lower()
    return re.sub('_+', '_', s2)


def to_pascal_case(snake_case_str: str) -> str:
    """Convert snake_case to PascalCase."""
    return ''.join(word.capitalize() for word in snake_case_str.split('_'))


class IdentifierSanitizer(Protocol):
    """Turns raw names into identifiers that are safe in the output language."""

    def sanitize(self, raw_name: str) -> str:
        """Return the identifier for ``raw_name``; empty when nothing usable remains."""
        ...

    def normalize(self, raw_name: str) -> str:
        """Return the identifier for ``raw_name`` before reserved words are rewritten."""
        ...

    def is_reserved(self, name: str) -> bool:
        """Whether ``name`` collides with a reserved word, ignoring case."""
        ...


class PythonIdentifierSanitizer:
    """Sanitizer driven by a language configuration (Python by default).

    The rules, applied in order:

    1. CamelCase and hyphens become snake_case.
    2. Every run of characters other than ASCII letters and digits becomes ``_``,
       and leading/trailing underscores are trimmed.
    3. A leading digit gets the configured prefix (``x``).
    4. A reserved word, compared case-insensitively, gets the configured suffix (``_``).

    A name without any letter or digit sanitizes to ``''``.
    """

    def __init__(self, language_config: LanguageConfig | None = None):
        """Initialize the sanitizer.

        Args:
            language_config: Configuration to take reserved words and naming
                affixes from. Loads the bundled Python configuration when omitted.
        """
        self.language_config = language_config or LanguageConfigLoader.load('python')
        self._reserved = frozenset(word.lower() for word in self.language_config.reserved_words)
        self._prefix = self.language_config.naming_conventions.leading_digit_prefix
        self._suffix = self.language_config.naming_conventions.reserved_word_suffix

    @property
    def reserved_words(self) -> frozenset[str]:
        return self.language_config.reserved_words

    def is_reserved(self, name: str) -> bool:
        return name.lower() in self._reserved

    def normalize(self, raw_name: str) -> str:
        name = re.sub('[^0-9a-zA-Z]+', '_', to_snake_case(raw_name)).strip('_')
        if name and name[0].isdigit():
            name = f'{self._prefix}{name}'
        return name

    def sanitize(self, raw_name: str) -> str:
        name = self.normalize(raw_name)
        if name and self.is_reserved(name):
            name = f'{name}{self._suffix}'
        return name
