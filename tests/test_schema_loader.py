from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from batch_ops.schema.loader import load_record_schema


def test_default_schema_when_no_path() -> None:
    schema = load_record_schema(None)
    assert schema.collection == "students"
    assert schema.key_field == "student_id"
    assert schema.fields.class_field == "class"
    assert schema.notifications.collection == "notifications"


def test_load_schema_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_record_schema(str(tmp_path / "missing.yaml"))


def test_load_schema_overrides(tmp_path: Path) -> None:
    mapping = {
        "collection": "pupils",
        "key_field": "pupil_id",
        "fields": {"class_field": "homeroom"},
        "attendance": {"collection": "roll_calls"},
    }
    path = tmp_path / "record_schema.yaml"
    path.write_text(yaml.safe_dump(mapping), encoding="utf-8")

    schema = load_record_schema(str(path))

    assert schema.collection == "pupils"
    assert schema.fields.class_field == "homeroom"
    assert schema.fields.stage == "stage"
    assert schema.attendance.collection == "roll_calls"
    assert schema.attendance.date_field == "date"


def test_empty_schema_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "record_schema.yaml"
    path.write_text("", encoding="utf-8")
    assert load_record_schema(str(path)).collection == "students"
