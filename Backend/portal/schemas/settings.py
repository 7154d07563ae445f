"""Notification settings and email template schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationSettingsResponse(BaseModel):
    notify_on_approve: bool
    notify_on_reject: bool
    notify_on_delete: bool
    notify_on_registration: bool


class SettingsEnvelope(BaseModel):
    settings: NotificationSettingsResponse


class SettingsUpdate(BaseModel):
    notify_on_approve: Optional[bool] = None
    notify_on_reject: Optional[bool] = None
    notify_on_delete: Optional[bool] = None
    notify_on_registration: Optional[bool] = None
    scope: Literal["global", "personal"] = "global"


class EmailTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    subject: str
    body_html: str
    body_text: str


class EmailTemplateList(BaseModel):
    templates: List[EmailTemplateResponse]


class EmailTemplateUpdate(BaseModel):
    key: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    body_html: str = Field(..., min_length=1)
    body_text: str = Field(..., min_length=1)
