"""Record schema mapping models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RecordFields(BaseModel):
    """Column names written by the field-setting kinds."""

    class_field: str = Field(default="class")
    stage: str = Field(default="stage")
    enrollment_status: str = Field(default="enrollment_status")
    advisor: str = Field(default="advisor_id")
    account_enabled: str = Field(default="account_enabled")
    academic_year: str = Field(default="academic_year")
    archived: str = Field(default="is_archived")
    archived_at: str = Field(default="archived_at")


class NotificationCollection(BaseModel):
    collection: str = Field(default="notifications")
    target_field: str = Field(default="student_id")
    message_field: str = Field(default="message")
    recipients_field: str = Field(default="recipient_type")


class AttendanceCollection(BaseModel):
    collection: str = Field(default="attendance_records")
    target_field: str = Field(default="student_id")
    date_field: str = Field(default="date")
    status_field: str = Field(default="status")


class ActivityLinkCollection(BaseModel):
    collection: str = Field(default="student_activities")
    target_field: str = Field(default="student_id")
    activity_field: str = Field(default="activity_id")


class RecordSchema(BaseModel):
    collection: str = Field(default="students", min_length=1)
    key_field: str = Field(default="student_id", min_length=1)
    fields: RecordFields = Field(default_factory=RecordFields)
    notifications: NotificationCollection = Field(default_factory=NotificationCollection)
    attendance: AttendanceCollection = Field(default_factory=AttendanceCollection)
    activity_links: ActivityLinkCollection = Field(default_factory=ActivityLinkCollection)

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> "RecordSchema":
        return cls.model_validate(data)
