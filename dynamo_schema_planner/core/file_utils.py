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

"""Common file operations for loading schema descriptions and configuration files."""

import json
from pathlib import Path
from typing import Any


class FileUtils:
    """Common utilities for file operations and JSON parsing."""

    @staticmethod
    def load_json_file(file_path: str, file_name: str = 'File') -> Any:
        """Load JSON file with simple error handling (raises exceptions).

        Args:
            file_path: Path to JSON file
            file_name: Name for error messages (e.g., "Schema", "Language configuration")

        Returns:
            Parsed JSON data

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If JSON is invalid or the file cannot be read
        """
        file_obj = Path(file_path)
        if not file_obj.is_file():
            raise FileNotFoundError(f'{file_name} file not found: {file_path}')

        try:
            with open(file_obj, encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f'Invalid JSON in {file_name} file: {e}') from e
        except (OSError, UnicodeDecodeError) as e:
            raise ValueError(f'Error reading {file_name} file: {e}') from e

    @staticmethod
    def resolve_within(file_path: Path, base_dir: Path, file_name: str = 'File') -> Path:
        """Resolve ``file_path`` and make sure it stays inside ``base_dir``.

        Raises:
            ValueError: If the path escapes ``base_dir`` or cannot be resolved
            FileNotFoundError: If the resolved file doesn't exist
        """
        try:
            resolved_path = file_path.resolve()
            base_dir = base_dir.resolve()
        except (OSError, RuntimeError) as e:
            raise ValueError(f'Invalid {file_name} path: {file_path}') from e

        try:
            resolved_path.relative_to(base_dir)
        except ValueError:
            raise ValueError(
                f'Path traversal detected: {file_path} resolves outside allowed directory'
            ) from None

        if not resolved_path.exists():
            raise FileNotFoundError(f'{file_name} file not found: {file_path}')
        return resolved_path
