"""
Outbound envelopes for the WA Gateway.

Every frame the gateway writes to a client is a flat JSON object with a
"type" discriminator. The builders below are the only place the field
names are spelled out, so the dashboard contract lives in one file.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from wa_gateway.components.core.constants import MessageType

Envelope = dict[str, Any]


@dataclass(frozen=True, slots=True)
class ContactPayload:
    """How a contact is presented to the dashboard."""

    id: str
    number: str
    name: str = ""
    is_my_contact: bool = True
    is_from_csv: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "number": self.number,
            "isMyContact": self.is_my_contact,
            "isFromCSV": self.is_from_csv,
        }
        # name is omitted rather than sent empty
        if self.name:
            data["name"] = self.name
        return data


# =============================================================================
# Session state
# =============================================================================


def qr_code(qr: str) -> Envelope:
    return {"type": MessageType.QR_CODE, "qr": qr}


def authenticated() -> Envelope:
    return {"type": MessageType.AUTHENTICATED}


def ready() -> Envelope:
    return {"type": MessageType.READY}


def disconnected(message: str) -> Envelope:
    return {"type": MessageType.DISCONNECTED, "message": message}


def error(message: str) -> Envelope:
    return {"type": MessageType.ERROR, "message": message}


# =============================================================================
# Contacts
# =============================================================================


def contacts(items: list[ContactPayload]) -> Envelope:
    return {"type": MessageType.CONTACTS, "contacts": [c.to_dict() for c in items]}


# =============================================================================
# Broadcast job
# =============================================================================


def broadcast_started(message: str, total: int) -> Envelope:
    return {"type": MessageType.BROADCAST_STARTED, "message": message, "total": total}


def broadcast_progress(
    current: int,
    total: int,
    contact: ContactPayload,
    error_message: str | None = None,
) -> Envelope:
    """
    Per-recipient progress. Carries either `success: true` or `error`,
    never both.
    """
    envelope: Envelope = {
        "type": MessageType.BROADCAST_PROGRESS,
        "current": current,
        "total": total,
        "contact": contact.to_dict(),
    }
    if error_message is None:
        envelope["success"] = True
    else:
        envelope["error"] = error_message
    return envelope


def broadcast_complete(successful: int, failed: int, total: int) -> Envelope:
    return {
        "type": MessageType.BROADCAST_COMPLETE,
        "successful": successful,
        "failed": failed,
        "total": total,
    }


# =============================================================================
# Chat
# =============================================================================


def chat_message(contact_id: str, message: dict[str, Any]) -> Envelope:
    return {"type": MessageType.CHAT_MESSAGE, "contactId": contact_id, "message": message}


# =============================================================================
# Scheduling
# =============================================================================


def schedule_success(message: str = "Message scheduled successfully") -> Envelope:
    return {"type": MessageType.SCHEDULE_SUCCESS, "message": message}


def scheduled_messages(messages: list[dict[str, Any]]) -> Envelope:
    return {"type": MessageType.SCHEDULED_MESSAGES, "messages": messages}


def scheduled_sent(message: str, successful: int, failed: int) -> Envelope:
    return {
        "type": MessageType.SCHEDULED_SENT,
        "message": message,
        "successful": successful,
        "failed": failed,
    }
