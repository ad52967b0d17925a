"""Library for formatting output."""

import json
import sys
from abc import ABC, abstractmethod
from typing import Any, Generator, TextIO

import yaml


PADDING = 4


def column_format_string(rows: list[list[str]]) -> str:
    """Produce a format string based on max width of columns."""
    num_cols = len(rows[0])
    widths = [0] * num_cols
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(str(value)))
    return "".join([f"{{:{w+PADDING}}}" for w in widths])


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Print the specified output rows in a column format."""
    data = [headers] + rows
    format_string = column_format_string(data)
    if format_string:
        for row in data:
            yield format_string.format(*[str(x) for x in row]).rstrip()


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ",".join(str(item) for item in value)
    return str(value)


class StructFormatter(ABC):
    """A formatter that prints objects."""

    @abstractmethod
    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Print the data objects."""


class PrintFormatter(StructFormatter):
    """A formatter that prints human readable console output."""

    def __init__(self, keys: list[str] | None = None):
        """Initialize the PrintFormatter with optional keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the data objects, missing values are left blank."""
        if not data:
            return
        keys = self._keys if self._keys is not None else list(data[0])
        rows = []
        for row in data:
            rows.append([_cell(row.get(key)) for key in keys])
        cols = [col.upper() for col in keys]
        yield from format_columns(cols, rows)

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Output the data objects."""
        for result in self.format(data):
            print(result, file=file)


class YamlFormatter(StructFormatter):
    """A formatter that prints each object as a yaml document."""

    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Print the data objects."""
        print(
            yaml.dump_all(data, sort_keys=False, explicit_start=True), end="", file=file
        )


class JsonFormatter(StructFormatter):
    """A formatter that prints json output."""

    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Print the data objects as a json list."""
        json.dump(data, sort_keys=False, indent=4, fp=file)
        print(file=file)


def formatter(output: str, keys: list[str] | None = None) -> StructFormatter:
    """Return the formatter for an --output choice."""
    if output == "yaml":
        return YamlFormatter()
    if output == "json":
        return JsonFormatter()
    return PrintFormatter(keys)
