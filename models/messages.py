"""
Messages exchanged with the chat platform, independent of the LINE SDK.

An inbound message carries exactly one payload variant; the dispatcher
matches on the variant and answers with a TextReply or an ImageReply.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class ImagePayload:
    message_id: str


@dataclass(frozen=True)
class FilePayload:
    message_id: str
    file_name: str


@dataclass(frozen=True)
class OtherPayload:
    kind: str  # sticker, video, location, ...


Payload = Union[TextPayload, ImagePayload, FilePayload, OtherPayload]


@dataclass(frozen=True)
class InboundMessage:
    user_id: str
    reply_token: str
    payload: Payload


@dataclass(frozen=True)
class TextReply:
    text: str


@dataclass(frozen=True)
class ImageReply:
    original_url: str
    preview_url: str


Reply = Union[TextReply, ImageReply]
