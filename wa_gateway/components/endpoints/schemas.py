"""
Inbound command models.

Clients send JSON objects with a "type" discriminator and camelCase
fields. Every model accepts both the wire alias and the Python name, and
ignores fields it does not know about.
"""

from pydantic import BaseModel, ConfigDict, Field


class _Command(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = ""


class CommandEnvelope(_Command):
    """Just enough of a frame to route it."""


class MediaPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: str = ""
    mimetype: str = ""
    filename: str = ""


class BroadcastCommand(_Command):
    message: str = ""
    contacts: list[str] = Field(default_factory=list)
    media: MediaPayload | None = None


class ChatCommand(_Command):
    contact_id: str = Field(default="", alias="contactId")
    message: str = ""


class RecurringConfigPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    interval: str = ""
    end_date: str = Field(default="", alias="endDate")


class ScheduleCommand(_Command):
    message: str = ""
    contacts: list[str] = Field(default_factory=list)
    date_time: str = Field(default="", alias="dateTime")
    is_recurring: bool = Field(default=False, alias="isRecurring")
    recurring_config: RecurringConfigPayload | None = Field(default=None, alias="recurringConfig")
