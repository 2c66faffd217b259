"""Sources reading local files."""

from .csv_file import CsvFileSource

__all__ = ["CsvFileSource"]
