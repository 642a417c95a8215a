"""
Utility modules for Chronologicon.
"""

from .paths import (
    converted_output_path,
    is_csv_source,
    is_ingestible,
    is_readable_file,
    normalize_database_path,
)

__all__ = [
    "converted_output_path",
    "is_csv_source",
    "is_ingestible",
    "is_readable_file",
    "normalize_database_path",
]
