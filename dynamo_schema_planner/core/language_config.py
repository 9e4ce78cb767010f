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

"""Language-specific configuration system."""

from dataclasses import dataclass
from dynamo_schema_planner.core.file_utils import FileUtils
from pathlib import Path


LANGUAGES_DIR = Path(__file__).parent.parent / 'languages'


@dataclass(frozen=True)
class NamingConventions:
    """Naming conventions for a language."""

    field_naming: str = 'snake_case'
    class_naming: str = 'PascalCase'
    reserved_word_suffix: str = '_'
    leading_digit_prefix: str = 'x'


@dataclass(frozen=True)
class LanguageConfig:
    """Complete language configuration."""

    name: str
    file_extension: str
    naming_conventions: NamingConventions
    reserved_words: frozenset[str]


class LanguageConfigLoader:
    """Loads language configurations from JSON files."""

    @staticmethod
    def load(language: str) -> LanguageConfig:
        """Load language configuration from JSON file.

        Raises:
            FileNotFoundError: If no configuration exists for ``language``
            ValueError: If the language name or the file content is invalid
        """
        config_path = LANGUAGES_DIR / language / 'language_config.json'

        try:
            resolved_path = FileUtils.resolve_within(
                config_path, LANGUAGES_DIR, file_name='Language configuration'
            )
        except FileNotFoundError:
            raise FileNotFoundError(f'Language configuration not found for: {language}') from None
        except ValueError as e:
            raise ValueError(f'Invalid language: {language}') from e

        data = FileUtils.load_json_file(str(resolved_path), 'Language configuration')

        required_fields = ['name', 'file_extension', 'reserved_words']
        missing_fields = [field for field in required_fields if field not in data]
        if missing_fields:
            raise ValueError(
                f'Missing required fields in {resolved_path}: {", ".join(missing_fields)}'
            )

        naming_data = data.get('naming_conventions', {})
        try:
            naming_conventions = NamingConventions(**naming_data)
        except TypeError as e:
            raise ValueError(f'Invalid naming_conventions in {resolved_path}: {e}') from e

        return LanguageConfig(
            name=data['name'],
            file_extension=data['file_extension'],
            naming_conventions=naming_conventions,
            reserved_words=frozenset(data['reserved_words']),
        )

    @staticmethod
    def get_available_languages() -> list[str]:
        """Get list of available languages."""
        return sorted(
            lang_dir.name
            for lang_dir in LANGUAGES_DIR.iterdir()
            if lang_dir.is_dir() and (lang_dir / 'language_config.json').exists()
        )
