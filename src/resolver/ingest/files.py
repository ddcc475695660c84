"""Read feedback from text files.

Usage:
    from resolver.ingest.files import FileSource

    source = FileSource(encoding="utf-8")
    items = source.read_many([Path("feedback.txt"), Path("more.txt")])
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from resolver.core.errors import InputError
from resolver.core.logging import get_logger
from resolver.ingest.normalizer import ItemNormalizer, dedupe_items
from resolver.models import NormalizedItem

logger = get_logger(__name__)

# Files above this size still load, but are flagged
LARGE_FILE_BYTES = 10 * 1024 * 1024


@dataclass
class FileCheck:
    """Result of validate_file().

    Attributes:
        path: The checked path
        valid: True when the file exists, is a regular file and is readable
        size_bytes: File size (0 when unavailable)
        errors: Problems that prevent reading
        warnings: Problems that do not prevent reading
    """

    path: Path
    valid: bool
    size_bytes: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class FileSource:
    """Loads text files and normalizes their contents."""

    def __init__(self, encoding: str = "utf-8", normalizer: ItemNormalizer | None = None):
        self.encoding = encoding
        self.normalizer = normalizer or ItemNormalizer()

    def validate_file(self, path: Path) -> FileCheck:
        """Check that a file can be read, without reading it."""
        check = FileCheck(path=path, valid=False)
        if not path.exists():
            check.errors.append(f"File not found: {path}")
            return check
        if not path.is_file():
            check.errors.append(f"Not a regular file: {path}")
            return check
        if not os.access(path, os.R_OK):
            check.errors.append(f"Permission denied: {path}")
            return check

        check.size_bytes = path.stat().st_size
        if check.size_bytes == 0:
            check.warnings.append("File is empty")
        elif check.size_bytes > LARGE_FILE_BYTES:
            check.warnings.append(
                f"File is large ({check.size_bytes / 1024 / 1024:.1f} MB); "
                "analysis may use many tokens"
            )
        check.valid = True
        return check

    def read_text(self, path: Path) -> str:
        """Read one file.

        Raises:
            InputError: If the file is missing, unreadable or not decodable
        """
        try:
            return path.read_text(encoding=self.encoding)
        except FileNotFoundError as e:
            raise InputError(
                f"Input file not found: {path}\nCheck the path passed with --file."
            ) from e
        except PermissionError as e:
            raise InputError(
                f"Permission denied reading {path}\nCheck the file's read permissions."
            ) from e
        except IsADirectoryError as e:
            raise InputError(f"Input path is a directory, not a file: {path}") from e
        except UnicodeDecodeError as e:
            raise InputError(
                f"Cannot decode {path} as {self.encoding}: {e.reason}\n"
                "Set file.encoding in config.yaml to the file's encoding."
            ) from e

    def read_items(self, path: Path) -> list[NormalizedItem]:
        """Read and normalize one file."""
        check = self.validate_file(path)
        for warning in check.warnings:
            logger.warning("input_file_warning", path=str(path), warning=warning)
        return self.normalizer.normalize_blob(self.read_text(path), source_name=str(path))

    def read_many(self, paths: list[Path]) -> list[NormalizedItem]:
        """Read several files, continuing past files that fail.

        Raises:
            InputError: Only if every file failed
        """
        items: list[NormalizedItem] = []
        failures: list[str] = []
        for path in paths:
            try:
                items.extend(self.read_items(path))
            except InputError as e:
                logger.error("input_file_failed", path=str(path), error=str(e))
                failures.append(str(e))

        if paths and len(failures) == len(paths):
            raise InputError("No input file could be read:\n" + "\n".join(failures))
        return dedupe_items(items)
