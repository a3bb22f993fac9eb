"""Declarative document loading and schema validation.

Alert rules and custom metric declarations arrive as text (env var, CLI flag,
or ``@path`` to a file). They are parsed with ``yaml.safe_load`` (a JSON
superset, so both JSON and YAML documents are accepted) and validated against
embedded jsonschema draft-07 schemas. Any failure raises ConfigError: the
engine refuses to start with undefined rules.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from ..utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

_NUMBER = {"type": "number"}

RULE_VALUE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        op: _NUMBER
        for op in (
            "$eq", "$gt", "$gte", "$lt", "$lte", "$after", "$before",
            "$skip_lt", "$skip_lte", "$skip_gt", "$skip_gte",
        )
    },
    "additionalProperties": False,
}

ALERT_RULES_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "properties": {
            "tags": {"type": "array", "items": {"type": "string"}},
            "failPercentile": {"type": "number", "minimum": 0, "maximum": 100},
            **{
                key: {
                    "anyOf": [
                        RULE_VALUE_SCHEMA,
                        {"type": "array", "items": RULE_VALUE_SCHEMA, "minItems": 1},
                    ]
                }
                for key in ("length", "sum", "mean", "stddev", "p5", "p95", "min", "max")
            },
        },
        "additionalProperties": False,
    },
}

CUSTOM_METRICS_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": {
        "type": ["object", "null"],
        "properties": {
            "labels": {"type": "array", "items": {"type": "string"}},
            "type": {"enum": ["scalar", "labeled", "categorical"]},
        },
        "additionalProperties": False,
    },
}


def load_document(text: str | None, what: str) -> dict[str, Any]:
    """Parse a JSON/YAML mapping; ``@path`` reads the document from a file.

    Empty input yields an empty mapping.
    """
    if text is None or not str(text).strip():
        return {}
    text = str(text).strip()
    if text.startswith("@"):
        path = Path(text[1:])
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"{what}: cannot read {path}: {e}") from e
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"{what}: parse error: {e}") from e
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ConfigError(f"{what}: expected a mapping, got {type(doc).__name__}")
    return doc


def validate_document(doc: dict[str, Any], schema: dict[str, Any], what: str) -> None:
    try:
        jsonschema.validate(instance=doc, schema=schema)
    except jsonschema.ValidationError as e:
        path = "/".join(str(p) for p in e.path)
        raise ConfigError(f"{what} schema validation error: {e.message} (path: {path or '<root>'})") from e


__all__ = [
    "ALERT_RULES_SCHEMA",
    "CUSTOM_METRICS_SCHEMA",
    "RULE_VALUE_SCHEMA",
    "load_document",
    "validate_document",
]
