"""
File system access for the notes directory ("vault").

Paths handed to and returned from a Vault are relative, '/'-separated
paths such as 'Reading notes/@smith2020.md'.
"""

import os
import fnmatch
import logging
import posixpath
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote

from cite_core.constants import MARKDOWN_EXTENSIONS

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATTERNS = [".git", ".obsidian", "node_modules"]


def normalize_path(path: str) -> str:
    """Use '/' separators, collapse duplicate and '.' segments, strip outer slashes."""
    path = path.replace("\\", "/")
    parts = [p for p in path.split("/") if p not in ("", ".")]
    return "/".join(parts)


def scandir_recursive(root: str, exclude_patterns: Optional[List[str]] = None) -> List[str]:
    """
    Recursively scan a directory, skipping entries that match any exclude pattern.

    Args:
        root: Root directory to scan
        exclude_patterns: List of glob patterns matched against names and relative paths

    Returns:
        Absolute paths of all files found
    """
    exclude_patterns = exclude_patterns or []
    paths = []
    try:
        with os.scandir(root) as it:
            for entry in it:
                relative_path = os.path.relpath(entry.path, root)
                if any(fnmatch.fnmatch(relative_path, pattern) or fnmatch.fnmatch(entry.name, pattern)
                       for pattern in exclude_patterns):
                    logger.debug(f"Excluding {entry.path}")
                    continue
                if entry.is_file():
                    paths.append(entry.path)
                elif entry.is_dir():
                    paths.extend(scandir_recursive(entry.path, exclude_patterns))
    except PermissionError as e:
        logger.warning(f"Permission error accessing directory: {root}. Skipping. Error: {e}")
    except OSError as e:
        logger.error(f"OS error while scanning directory: {root}. Skipping. Error: {e}")
    return paths


class Vault:
    """The notes directory that literature notes are created in."""

    def __init__(self, root: Union[str, Path], exclude_patterns: Optional[List[str]] = None):
        self.root = Path(root)
        self.exclude_patterns = DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns

    def absolute_path(self, path: str) -> Path:
        return self.root / normalize_path(path)

    def read_file(self, path: Union[str, Path]) -> bytes:
        """Read a file; relative paths are resolved against the vault root."""
        path = Path(path)
        if not path.is_absolute():
            path = self.root / path
        return path.read_bytes()

    def get_file_by_path(self, path: str) -> Optional[str]:
        """Return the normalized path if that exact file exists."""
        normalized = normalize_path(path)
        if normalized and self.absolute_path(normalized).is_file():
            return normalized
        return None

    def markdown_files(self) -> List[str]:
        """All Markdown files in the vault, as vault-relative paths."""
        if not self.root.is_dir():
            return []
        files = []
        for full_path in scandir_recursive(str(self.root), self.exclude_patterns):
            if os.path.splitext(full_path)[1].lower() in MARKDOWN_EXTENSIONS:
                files.append(normalize_path(os.path.relpath(full_path, self.root)))
        return sorted(files)

    def create(self, path: str, content: str) -> str:
        """
        Create a new file. The containing folder must already exist.

        Raises:
            FileExistsError: if the file already exists
            OSError: on any other I/O failure
        """
        normalized = normalize_path(path)
        full_path = self.absolute_path(normalized)
        with open(full_path, "x", encoding="utf-8") as f:
            f.write(content)
        logger.info(f"Created {full_path}")
        return normalized

    def link_text(self, path: str) -> str:
        """URL-encoded link target for a Markdown link to a note."""
        return quote(normalize_path(path))

    def basename(self, path: str) -> str:
        return posixpath.splitext(posixpath.basename(normalize_path(path)))[0]
