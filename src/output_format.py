"""Structured output encoding for command results.

Results are printed as YAML (the default, easiest for assistants to read) or
JSON. The format is always passed in explicitly by the caller.
"""

import json
import sys
from enum import Enum
from typing import Any, TextIO

import yaml


class OutputFormat(str, Enum):
    YAML = "yaml"
    JSON = "json"


def resolve_format(
    format_name: str | None = None,
    json_flag: bool = False,
    yaml_flag: bool = False,
) -> OutputFormat:
    """Resolve the output format from command options.

    The --json/--yaml aliases take precedence over --format; anything
    unrecognized falls back to YAML.
    """
    if json_flag:
        return OutputFormat.JSON
    if yaml_flag:
        return OutputFormat.YAML
    try:
        return OutputFormat((format_name or "").lower())
    except ValueError:
        return OutputFormat.YAML


def encode_output(data: Any, fmt: OutputFormat, stream: TextIO | None = None) -> None:
    """Write ``data`` to ``stream`` (stdout by default) in the given format."""
    stream = stream or sys.stdout
    if fmt == OutputFormat.JSON:
        json.dump(data, stream, indent=2, ensure_ascii=False)
        stream.write("\n")
    else:
        yaml.safe_dump(
            data,
            stream,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
