"""
Filename helpers shared by the fetcher, the converter and the storage layer.

This module provides helper functions for:
- Reducing caller-supplied names to a bare basename
- Splitting a filename into stem and extension
- Normalizing spreadsheet extensions
"""

from __future__ import annotations

import posixpath

# Extensions the conversion engine accepts; compared case-sensitively
SPREADSHEET_EXTENSIONS = (".xlsx", ".xls", ".xlsm")
DEFAULT_EXTENSION = ".xlsx"


def basename(name: str) -> str:
    """
    Strip any directory component from a caller-supplied name.

    Both forward and backward slashes are treated as separators so that
    Windows-style paths cannot smuggle a directory into a storage key.

    Example:
        >>> basename("../../etc/passwd")
        "passwd"
        >>> basename("C:\\\\forms\\\\survey.xlsx")
        "survey.xlsx"
    """
    return posixpath.basename(name.replace("\\", "/"))


def split_extension(filename: str) -> tuple[str, str]:
    """
    Split a filename into stem and extension components.

    A leading dot does not start an extension, so ``.xlsx`` has stem
    ``.xlsx`` and no extension.

    Example:
        >>> split_extension("survey.xlsx")
        ("survey", ".xlsx")
        >>> split_extension("archive.tar.gz")
        ("archive.tar", ".gz")
    """
    stem, extension = posixpath.splitext(filename)
    return stem, extension


def normalize_extension(filename: str) -> str:
    """
    Coerce a filename onto one of the supported spreadsheet extensions.

    A missing extension gets ``.xlsx`` appended; an unrecognized one is
    replaced by ``.xlsx``; a recognized one is left alone. Only the name
    changes, the document bytes are never touched. Applying the function
    twice yields the same result as applying it once.

    Example:
        >>> normalize_extension("survey")
        "survey.xlsx"
        >>> normalize_extension("survey.csv")
        "survey.xlsx"
        >>> normalize_extension("survey.xls")
        "survey.xls"
    """
    stem, extension = split_extension(filename)
    if not extension:
        return filename + DEFAULT_EXTENSION
    if extension not in SPREADSHEET_EXTENSIONS:
        return stem + DEFAULT_EXTENSION
    return filename
