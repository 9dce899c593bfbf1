"""Tests for structured output encoding."""

import io
import json

import pytest
import yaml

from src.output_format import OutputFormat, encode_output, resolve_format


@pytest.mark.unit
class TestResolveFormat:
    """Tests for resolve_format()."""

    def test_default_is_yaml(self):
        assert resolve_format() == OutputFormat.YAML

    def test_format_name(self):
        assert resolve_format("json") == OutputFormat.JSON
        assert resolve_format("JSON") == OutputFormat.JSON

    def test_unknown_falls_back_to_yaml(self):
        assert resolve_format("xml") == OutputFormat.YAML

    def test_json_flag_wins(self):
        assert resolve_format("yaml", json_flag=True) == OutputFormat.JSON

    def test_yaml_flag_wins(self):
        assert resolve_format("json", yaml_flag=True) == OutputFormat.YAML


@pytest.mark.unit
class TestEncodeOutput:
    """Tests for encode_output()."""

    data = {"pr": 42, "outcome": "satisfied", "reviews": [{"author": "gemini", "body": "日本語"}]}

    def test_json(self):
        stream = io.StringIO()

        encode_output(self.data, OutputFormat.JSON, stream)

        text = stream.getvalue()
        assert text.endswith("}\n")
        assert json.loads(text) == self.data
        assert "日本語" in text

    def test_yaml_keeps_key_order(self):
        stream = io.StringIO()

        encode_output(self.data, OutputFormat.YAML, stream)

        text = stream.getvalue()
        assert yaml.safe_load(text) == self.data
        assert text.index("pr:") < text.index("outcome:")
        assert "日本語" in text

    def test_defaults_to_stdout(self, capsys):
        encode_output({"a": 1}, OutputFormat.JSON)

        assert json.loads(capsys.readouterr().out) == {"a": 1}
