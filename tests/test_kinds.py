from __future__ import annotations

import datetime as dt

import pytest

from batch_ops.domain import kinds
from batch_ops.domain.errors import InvalidOperationRequest
from batch_ops.domain.operations import MutationAction, OperationKind
from batch_ops.schema.models import RecordSchema

NOW = dt.datetime(2024, 9, 1, 8, 30, tzinfo=dt.timezone.utc)


def _resolve(kind: OperationKind, params: dict, target_id: str = "S1"):
    normalized = kinds.normalize_parameters(kind, params)
    return kinds.resolve_mutation(kind, normalized, target_id, RecordSchema(), NOW)


def test_every_kind_has_a_handler() -> None:
    for kind in OperationKind:
        assert kinds.get_handler(kind).kind is kind


def test_parse_kind_accepts_wire_values() -> None:
    assert kinds.parse_kind("statusUpdate") is OperationKind.STATUS_UPDATE
    assert kinds.parse_kind(OperationKind.COPY_DATA) is OperationKind.COPY_DATA


def test_parse_kind_rejects_unknown() -> None:
    with pytest.raises(InvalidOperationRequest, match="Unknown operation kind"):
        kinds.parse_kind("expel")


def test_transfer_writes_class_and_stage() -> None:
    request = _resolve(OperationKind.TRANSFER, {"class_id": "C9", "stage": "Grade 5"})
    assert request.action is MutationAction.WRITE
    assert request.collection == "students"
    assert request.fields == {"class": "C9", "stage": "Grade 5"}


def test_transfer_without_stage_leaves_stage_untouched() -> None:
    request = _resolve(OperationKind.TRANSFER, {"class_id": "C9"})
    assert request.fields == {"class": "C9"}


def test_status_update_writes_enrollment_status() -> None:
    request = _resolve(OperationKind.STATUS_UPDATE, {"status": "suspended"})
    assert request.fields == {"enrollment_status": "suspended"}


def test_missing_required_parameter_is_rejected() -> None:
    with pytest.raises(InvalidOperationRequest, match="statusUpdate"):
        kinds.normalize_parameters(OperationKind.STATUS_UPDATE, {})


def test_unknown_parameter_is_rejected() -> None:
    with pytest.raises(InvalidOperationRequest):
        kinds.normalize_parameters(
            OperationKind.STATUS_UPDATE, {"status": "active", "reason": "typo"}
        )


def test_parameters_must_be_a_mapping() -> None:
    with pytest.raises(InvalidOperationRequest, match="object"):
        kinds.validate_parameters(OperationKind.TRANSFER, ["C9"])  # type: ignore[arg-type]


def test_notification_inserts_row_per_target() -> None:
    request = _resolve(
        OperationKind.SEND_NOTIFICATION, {"message": "Exam moved"}, target_id="S2"
    )
    assert request.action is MutationAction.INSERT
    assert request.collection == "notifications"
    assert request.fields == {
        "student_id": "S2",
        "message": "Exam moved",
        "recipient_type": "both",
        "created_at": NOW.isoformat(),
    }


def test_attendance_date_normalized_to_iso_string() -> None:
    params = kinds.normalize_parameters(
        OperationKind.RECORD_ATTENDANCE, {"date": dt.date(2024, 9, 2), "status": "present"}
    )
    assert params == {"date": "2024-09-02", "status": "present"}
    request = kinds.resolve_mutation(
        OperationKind.RECORD_ATTENDANCE, params, "S1", RecordSchema(), NOW
    )
    assert request.collection == "attendance_records"
    assert request.fields["date"] == "2024-09-02"


def test_archive_sets_flag_and_timestamp() -> None:
    request = _resolve(OperationKind.ARCHIVE_OR_DELETE, {"action": "archive"})
    assert request.action is MutationAction.WRITE
    assert request.fields == {"is_archived": True, "archived_at": NOW.isoformat()}


def test_delete_requires_existing_record() -> None:
    request = _resolve(OperationKind.ARCHIVE_OR_DELETE, {"action": "delete"})
    assert request.action is MutationAction.DELETE
    assert request.match == {"student_id": "S1"}
    assert request.require_match is True


def test_unlink_tolerates_missing_link() -> None:
    request = _resolve(
        OperationKind.LINK_ACTIVITY, {"activity_id": "A7", "action": "unlink"}
    )
    assert request.action is MutationAction.DELETE
    assert request.collection == "student_activities"
    assert request.match == {"student_id": "S1", "activity_id": "A7"}
    assert request.require_match is False


def test_bulk_import_without_map_is_noop() -> None:
    params = {"records": {"S1": {"phone": "555-0101"}}}
    assert _resolve(OperationKind.BULK_IMPORT, params, "S1").fields == {"phone": "555-0101"}
    assert _resolve(OperationKind.BULK_IMPORT, params, "S2").action is MutationAction.NONE


@pytest.mark.parametrize(
    ("kind", "params"),
    [
        (OperationKind.PRINT_BATCH, {"document_type": "cards"}),
        (OperationKind.COPY_DATA, {"source_class": "C1"}),
    ],
)
def test_side_effect_free_kinds_resolve_to_noop(kind: OperationKind, params: dict) -> None:
    assert _resolve(kind, params).action is MutationAction.NONE


@pytest.mark.parametrize(
    ("kind", "params", "eligible"),
    [
        (OperationKind.TRANSFER, {"class_id": "C9"}, True),
        (OperationKind.STATUS_UPDATE, {"status": "active"}, True),
        (OperationKind.TOGGLE_ACCOUNTS, {"enabled": False}, True),
        (OperationKind.ARCHIVE_OR_DELETE, {"action": "archive"}, True),
        (OperationKind.ARCHIVE_OR_DELETE, {"action": "delete"}, False),
        (OperationKind.SEND_NOTIFICATION, {"message": "hi"}, False),
        (OperationKind.RECORD_ATTENDANCE, {"date": "2024-09-02", "status": "absent"}, False),
        (OperationKind.LINK_ACTIVITY, {"activity_id": "A1"}, False),
    ],
)
def test_undo_eligibility(kind: OperationKind, params: dict, eligible: bool) -> None:
    normalized = kinds.normalize_parameters(kind, params)
    assert kinds.is_undo_eligible(kind, normalized) is eligible


def test_default_labels() -> None:
    assert kinds.default_label(OperationKind.TRANSFER, {"class_id": "C9"}) == (
        "Transfer to class C9"
    )
    assert kinds.default_label(OperationKind.TOGGLE_ACCOUNTS, {"enabled": False}) == (
        "Disable accounts"
    )
    assert kinds.default_label(
        OperationKind.PROMOTE_YEAR, {"stage": "Grade 6", "academic_year": "2024-2025"}
    ) == "Promote to Grade 6 - 2024-2025"


def test_audit_detail_is_kind_specific() -> None:
    assert kinds.audit_detail(OperationKind.STATUS_UPDATE, {"status": "suspended"}) == {
        "new_status": "suspended"
    }
    assert kinds.audit_detail(OperationKind.TRANSFER, {"class_id": "C9"}) == {
        "new_class": "C9",
        "new_stage": None,
    }
