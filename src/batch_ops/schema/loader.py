"""Loader for record_schema.yaml."""

from __future__ import annotations

from pathlib import Path

import yaml

from batch_ops.schema.models import RecordSchema


def load_record_schema(path: str | None) -> RecordSchema:
    if path is None:
        return RecordSchema()
    schema_path = Path(path)
    if not schema_path.exists():
        raise FileNotFoundError(f"Record schema file not found: {schema_path}")
    with schema_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return RecordSchema.from_yaml(data)
