"""Per-kind parameter models and mutation resolution.

Every ``OperationKind`` has exactly one ``KindHandler`` in ``_HANDLERS``. A
handler owns four things for its kind:

- the pydantic model that validates ``parameters`` at submission time,
- the pure mapping ``(parameters, target_id) -> MutationRequest``,
- whether the kind (for the given parameters) can be undone from a snapshot,
- the kind-specific ``detail`` written to the audit log.

The module refuses to import if a kind is left without a handler.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from batch_ops.domain.errors import InvalidOperationRequest
from batch_ops.domain.operations import MutationAction, MutationRequest, OperationKind
from batch_ops.schema.models import RecordSchema


class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TransferParams(_Params):
    class_id: str = Field(min_length=1)
    stage: str | None = Field(default=None, min_length=1)


class StatusUpdateParams(_Params):
    status: str = Field(min_length=1)


class AssignAdvisorParams(_Params):
    advisor_id: str = Field(min_length=1)


class BulkImportParams(_Params):
    records: dict[str, dict[str, Any]] = Field(
        description="Field map per target id; targets without a map are left untouched.",
    )


class SendNotificationParams(_Params):
    message: str = Field(min_length=1)
    recipients: Literal["students", "guardians", "both"] = "both"


class PrintBatchParams(_Params):
    document_type: Literal["cards", "registration", "attendance", "certificates"]


class ToggleAccountsParams(_Params):
    enabled: bool


class RecordAttendanceParams(_Params):
    date: dt.date
    status: str = Field(min_length=1)


class PromoteYearParams(_Params):
    stage: str = Field(min_length=1)
    academic_year: str = Field(min_length=1)


class ArchiveOrDeleteParams(_Params):
    action: Literal["archive", "delete"] = "archive"


class LinkActivityParams(_Params):
    activity_id: str = Field(min_length=1)
    action: Literal["link", "unlink"] = "link"


class CopyDataParams(_Params):
    source_class: str = Field(min_length=1)


P = TypeVar("P", bound=_Params)


@dataclass(frozen=True)
class KindHandler(Generic[P]):
    kind: OperationKind
    params_model: type[P]
    resolve: Callable[[P, str, RecordSchema, dt.datetime], MutationRequest]
    audit_detail: Callable[[P], dict[str, Any]]
    label: Callable[[P], str]
    undo_eligible: Callable[[P], bool] = lambda _params: False

    def parse(self, parameters: Mapping[str, Any]) -> P:
        return self.params_model.model_validate(dict(parameters))


def _write(
    schema: RecordSchema, target_id: str, fields: Mapping[str, Any]
) -> MutationRequest:
    return MutationRequest(
        action=MutationAction.WRITE,
        target_id=target_id,
        collection=schema.collection,
        fields=dict(fields),
    )


def _noop(target_id: str) -> MutationRequest:
    return MutationRequest(action=MutationAction.NONE, target_id=target_id)


def _always(_params: object) -> bool:
    return True


def _resolve_transfer(
    params: TransferParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    fields: dict[str, Any] = {schema.fields.class_field: params.class_id}
    if params.stage is not None:
        fields[schema.fields.stage] = params.stage
    return _write(schema, target_id, fields)


def _resolve_status(
    params: StatusUpdateParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    return _write(schema, target_id, {schema.fields.enrollment_status: params.status})


def _resolve_advisor(
    params: AssignAdvisorParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    return _write(schema, target_id, {schema.fields.advisor: params.advisor_id})


def _resolve_import(
    params: BulkImportParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    fields = params.records.get(target_id)
    if not fields:
        return _noop(target_id)
    return _write(schema, target_id, fields)


def _resolve_notification(
    params: SendNotificationParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    table = schema.notifications
    return MutationRequest(
        action=MutationAction.INSERT,
        target_id=target_id,
        collection=table.collection,
        fields={
            table.target_field: target_id,
            table.message_field: params.message,
            table.recipients_field: params.recipients,
            "created_at": now.isoformat(),
        },
    )


def _resolve_print(
    params: PrintBatchParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    return _noop(target_id)


def _resolve_toggle(
    params: ToggleAccountsParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    return _write(schema, target_id, {schema.fields.account_enabled: params.enabled})


def _resolve_attendance(
    params: RecordAttendanceParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    table = schema.attendance
    return MutationRequest(
        action=MutationAction.INSERT,
        target_id=target_id,
        collection=table.collection,
        fields={
            table.target_field: target_id,
            table.date_field: params.date.isoformat(),
            table.status_field: params.status,
            "created_at": now.isoformat(),
        },
    )


def _resolve_promote(
    params: PromoteYearParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    return _write(
        schema,
        target_id,
        {
            schema.fields.stage: params.stage,
            schema.fields.academic_year: params.academic_year,
        },
    )


def _resolve_archive(
    params: ArchiveOrDeleteParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    if params.action == "archive":
        return _write(
            schema,
            target_id,
            {schema.fields.archived: True, schema.fields.archived_at: now.isoformat()},
        )
    return MutationRequest(
        action=MutationAction.DELETE,
        target_id=target_id,
        collection=schema.collection,
        match={schema.key_field: target_id},
        require_match=True,
    )


def _resolve_link(
    params: LinkActivityParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    table = schema.activity_links
    row = {table.target_field: target_id, table.activity_field: params.activity_id}
    if params.action == "link":
        return MutationRequest(
            action=MutationAction.INSERT,
            target_id=target_id,
            collection=table.collection,
            fields=row,
        )
    # Unlinking a record that was never linked is not an error.
    return MutationRequest(
        action=MutationAction.DELETE,
        target_id=target_id,
        collection=table.collection,
        match=row,
    )


def _resolve_copy(
    params: CopyDataParams, target_id: str, schema: RecordSchema, now: dt.datetime
) -> MutationRequest:
    return _noop(target_id)


_HANDLERS: dict[OperationKind, KindHandler[Any]] = {
    handler.kind: handler
    for handler in (
        KindHandler(
            kind=OperationKind.TRANSFER,
            params_model=TransferParams,
            resolve=_resolve_transfer,
            audit_detail=lambda p: {"new_class": p.class_id, "new_stage": p.stage},
            label=lambda p: f"Transfer to class {p.class_id}",
            undo_eligible=_always,
        ),
        KindHandler(
            kind=OperationKind.STATUS_UPDATE,
            params_model=StatusUpdateParams,
            resolve=_resolve_status,
            audit_detail=lambda p: {"new_status": p.status},
            label=lambda p: f"Update status to: {p.status}",
            undo_eligible=_always,
        ),
        KindHandler(
            kind=OperationKind.ASSIGN_ADVISOR,
            params_model=AssignAdvisorParams,
            resolve=_resolve_advisor,
            audit_detail=lambda p: {"advisor_id": p.advisor_id},
            label=lambda p: "Assign academic advisor",
            undo_eligible=_always,
        ),
        KindHandler(
            kind=OperationKind.BULK_IMPORT,
            params_model=BulkImportParams,
            resolve=_resolve_import,
            audit_detail=lambda p: {},
            label=lambda p: "Import basic data",
            undo_eligible=_always,
        ),
        KindHandler(
            kind=OperationKind.SEND_NOTIFICATION,
            params_model=SendNotificationParams,
            resolve=_resolve_notification,
            audit_detail=lambda p: {"recipients": p.recipients},
            label=lambda p: "Send bulk notifications",
        ),
        KindHandler(
            kind=OperationKind.PRINT_BATCH,
            params_model=PrintBatchParams,
            resolve=_resolve_print,
            audit_detail=lambda p: {"document_type": p.document_type},
            label=lambda p: f"Print {p.document_type}",
        ),
        KindHandler(
            kind=OperationKind.TOGGLE_ACCOUNTS,
            params_model=ToggleAccountsParams,
            resolve=_resolve_toggle,
            audit_detail=lambda p: {"enabled": p.enabled},
            label=lambda p: "Enable accounts" if p.enabled else "Disable accounts",
            undo_eligible=_always,
        ),
        KindHandler(
            kind=OperationKind.RECORD_ATTENDANCE,
            params_model=RecordAttendanceParams,
            resolve=_resolve_attendance,
            audit_detail=lambda p: {"date": p.date.isoformat(), "status": p.status},
            label=lambda p: f"Record bulk attendance - {p.status}",
        ),
        KindHandler(
            kind=OperationKind.PROMOTE_YEAR,
            params_model=PromoteYearParams,
            resolve=_resolve_promote,
            audit_detail=lambda p: {
                "new_stage": p.stage,
                "new_academic_year": p.academic_year,
            },
            label=lambda p: f"Promote to {p.stage} - {p.academic_year}",
            undo_eligible=_always,
        ),
        KindHandler(
            kind=OperationKind.ARCHIVE_OR_DELETE,
            params_model=ArchiveOrDeleteParams,
            resolve=_resolve_archive,
            audit_detail=lambda p: {"action": p.action},
            label=lambda p: "Archive records" if p.action == "archive" else "Delete records",
            undo_eligible=lambda p: p.action == "archive",
        ),
        KindHandler(
            kind=OperationKind.LINK_ACTIVITY,
            params_model=LinkActivityParams,
            resolve=_resolve_link,
            audit_detail=lambda p: {"activity_id": p.activity_id, "action": p.action},
            label=lambda p: (
                "Link to activity" if p.action == "link" else "Unlink from activity"
            ),
        ),
        KindHandler(
            kind=OperationKind.COPY_DATA,
            params_model=CopyDataParams,
            resolve=_resolve_copy,
            audit_detail=lambda p: {"source_class": p.source_class},
            label=lambda p: "Copy data",
        ),
    )
}

_unwired = set(OperationKind) - set(_HANDLERS)
if _unwired:
    raise RuntimeError(
        "Operation kinds without a handler: "
        + ", ".join(sorted(kind.value for kind in _unwired))
    )


def parse_kind(value: str | OperationKind) -> OperationKind:
    if isinstance(value, OperationKind):
        return value
    try:
        return OperationKind(value)
    except ValueError:
        allowed = ", ".join(kind.value for kind in OperationKind)
        raise InvalidOperationRequest(
            f"Unknown operation kind {value!r}; expected one of: {allowed}"
        ) from None


def get_handler(kind: OperationKind) -> KindHandler[Any]:
    return _HANDLERS[kind]


def validate_parameters(kind: OperationKind, parameters: Mapping[str, Any] | None) -> _Params:
    if parameters is not None and not isinstance(parameters, Mapping):
        raise InvalidOperationRequest("parameters must be an object")
    try:
        return get_handler(kind).parse(parameters or {})
    except ValidationError as exc:
        raise InvalidOperationRequest(
            f"Invalid parameters for {kind.value}: {exc}"
        ) from exc


def normalize_parameters(kind: OperationKind, parameters: Mapping[str, Any] | None) -> dict[str, Any]:
    """Validate and return the JSON-safe form stored on the operation."""
    return validate_parameters(kind, parameters).model_dump(mode="json")


def resolve_mutation(
    kind: OperationKind,
    parameters: Mapping[str, Any],
    target_id: str,
    schema: RecordSchema,
    now: dt.datetime,
) -> MutationRequest:
    handler = get_handler(kind)
    return handler.resolve(handler.parse(parameters), target_id, schema, now)


def is_undo_eligible(kind: OperationKind, parameters: Mapping[str, Any]) -> bool:
    handler = get_handler(kind)
    return handler.undo_eligible(handler.parse(parameters))


def audit_detail(kind: OperationKind, parameters: Mapping[str, Any]) -> dict[str, Any]:
    handler = get_handler(kind)
    return handler.audit_detail(handler.parse(parameters))


def default_label(kind: OperationKind, parameters: Mapping[str, Any]) -> str:
    handler = get_handler(kind)
    return handler.label(handler.parse(parameters))
