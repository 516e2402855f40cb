"""Inbound message events as seen by the dialogue engine."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class MessageKind(str, Enum):
    """Kinds of inbound messages."""

    TEXT = "text"
    INTERACTIVE = "interactive"  # Button/list replies, flattened to their title
    OTHER = "other"              # Media, location, etc. ("[image]")


@dataclass(frozen=True)
class InboundMessage:
    """One inbound message from a contact.

    Transport specifics are already stripped: interactive payloads carry
    the selected title as ``text`` and unsupported types carry a
    placeholder such as ``"[image]"``.
    """

    contact_id: str
    text: str
    contact_name: Optional[str] = None
    kind: MessageKind = MessageKind.TEXT
    message_id: Optional[str] = None
