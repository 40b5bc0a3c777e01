"""
Contact identifiers.

A JID is "user@server". Dashboards send contact ids in several shapes:
full JIDs, legacy "@c.us" ids, or bare phone numbers with a leading "+"
and spaces. parse_contact_jid() turns all of them into a JID on the
default user server.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_USER_SERVER = "s.whatsapp.net"
LEGACY_USER_SERVER = "c.us"
GROUP_SERVER = "g.us"

# Country prefix rendered as a local trunk "0" for display
LOCAL_COUNTRY_PREFIX = "62"


class InvalidContactError(ValueError):
    """Contact id cannot be turned into a JID."""


@dataclass(frozen=True, slots=True)
class JID:
    user: str
    server: str = DEFAULT_USER_SERVER

    def __str__(self) -> str:
        if not self.user:
            return self.server
        return f"{self.user}@{self.server}"

    @property
    def is_user(self) -> bool:
        return self.server == DEFAULT_USER_SERVER


@dataclass(frozen=True, slots=True)
class ContactInfo:
    """Names the transport knows for a contact. Any of them may be blank."""

    full_name: str = ""
    first_name: str = ""
    push_name: str = ""
    business_name: str = ""


def parse_jid(value: str) -> JID:
    """
    Parse "user@server".

    Raises:
        InvalidContactError: value has no "@" or an empty server part.
    """
    user, sep, server = value.partition("@")
    if not sep or not server:
        raise InvalidContactError(f"not a JID: {value!r}")
    return JID(user=user, server=server)


def parse_contact_jid(contact_id: str) -> JID:
    """
    Normalise a dashboard contact id into a JID.

    - "628123@s.whatsapp.net" -> as-is
    - "628123@c.us" -> server mapped to s.whatsapp.net
    - " +62 812 3 " -> "628123@s.whatsapp.net"

    Raises:
        InvalidContactError: the id is empty after normalisation.
    """
    if not contact_id:
        raise InvalidContactError("empty contact id")

    if "@" in contact_id:
        try:
            jid = parse_jid(contact_id)
        except InvalidContactError:
            pass
        else:
            if jid.server == LEGACY_USER_SERVER:
                return JID(user=jid.user, server=DEFAULT_USER_SERVER)
            return jid

    normalized = contact_id.strip()
    normalized = normalized.removeprefix("+")
    normalized = normalized.replace(" ", "")

    if not normalized:
        raise InvalidContactError("empty phone number")

    return JID(user=normalized, server=DEFAULT_USER_SERVER)


def pick_name(info: ContactInfo) -> str:
    """First non-blank of full name, first name, push name, business name."""
    for name in (info.full_name, info.first_name, info.push_name, info.business_name):
        if name.strip():
            return name
    return ""


def format_number(user: str) -> str:
    """Render an international number in local form ("62812" -> "0812")."""
    if user.startswith(LOCAL_COUNTRY_PREFIX):
        return "0" + user[len(LOCAL_COUNTRY_PREFIX):]
    return user
