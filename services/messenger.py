"""
LINE Messaging API adapter.

This is the only module that imports the LINE SDK. It turns webhook bodies
into InboundMessage values and sends TextReply / ImageReply values back.
"""
import logging
from typing import List

from flask import current_app
from linebot.v3 import WebhookParser
from linebot.v3.exceptions import InvalidSignatureError
from linebot.v3.messaging import (
    ApiClient,
    Configuration,
    ImageMessage,
    MessagingApi,
    MessagingApiBlob,
    ReplyMessageRequest,
    TextMessage,
)
from linebot.v3.webhooks import (
    FileMessageContent,
    ImageMessageContent,
    MessageEvent,
    TextMessageContent,
)

from models.messages import (
    FilePayload,
    ImagePayload,
    InboundMessage,
    OtherPayload,
    Reply,
    TextPayload,
    TextReply,
)
from services.errors import InvalidSignature, MessagingError

logger = logging.getLogger(__name__)

# LINE rejects text messages longer than this.
MAX_TEXT_LENGTH = 5000


def to_inbound(event) -> InboundMessage | None:
    """Map an SDK event to an InboundMessage; None for non-message events."""
    if not isinstance(event, MessageEvent):
        return None

    user_id = getattr(event.source, "user_id", None) or ""
    message = event.message
    if isinstance(message, TextMessageContent):
        payload = TextPayload(text=message.text)
    elif isinstance(message, ImageMessageContent):
        payload = ImagePayload(message_id=message.id)
    elif isinstance(message, FileMessageContent):
        payload = FilePayload(message_id=message.id, file_name=message.file_name or "")
    else:
        payload = OtherPayload(kind=getattr(message, "type", None) or type(message).__name__)
    return InboundMessage(user_id=user_id, reply_token=event.reply_token, payload=payload)


def to_sdk_message(reply: Reply):
    if isinstance(reply, TextReply):
        text = reply.text
        if len(text) > MAX_TEXT_LENGTH:
            text = text[: MAX_TEXT_LENGTH - 3] + "..."
        return TextMessage(text=text)
    return ImageMessage(original_content_url=reply.original_url, preview_image_url=reply.preview_url)


class LineMessenger:
    def __init__(self, channel_secret: str, channel_token: str) -> None:
        if not channel_secret or not channel_token:
            raise ValueError("LINE channel secret and token are required.")
        self._parser = WebhookParser(channel_secret)
        self._configuration = Configuration(access_token=channel_token)

    def parse_events(self, body: str, signature: str) -> List[InboundMessage]:
        """
        Verify and parse a webhook body.
        Raises InvalidSignature when the signature does not match.
        """
        try:
            events = self._parser.parse(body, signature)
        except InvalidSignatureError as e:
            raise InvalidSignature(str(e)) from e

        messages = []
        for event in events:
            inbound = to_inbound(event)
            if inbound is None:
                logger.debug(f"Skipping non-message event: {getattr(event, 'type', type(event).__name__)}")
                continue
            messages.append(inbound)
        return messages

    def reply(self, reply_token: str, reply: Reply) -> None:
        try:
            with ApiClient(self._configuration) as api_client:
                MessagingApi(api_client).reply_message(
                    ReplyMessageRequest(reply_token=reply_token, messages=[to_sdk_message(reply)])
                )
        except Exception as e:
            raise MessagingError(f"Failed to send reply: {e}") from e

    def fetch_message_content(self, message_id: str) -> bytes:
        """Download the bytes of an image or file message."""
        try:
            with ApiClient(self._configuration) as api_client:
                content = MessagingApiBlob(api_client).get_message_content(message_id=message_id)
        except Exception as e:
            raise MessagingError(f"Failed to fetch content of message {message_id}: {e}") from e
        data = bytes(content)
        logger.info(f"Fetched message {message_id} content: {len(data)} bytes")
        return data


def get_messenger() -> LineMessenger:
    """The messenger bound to the current application."""
    return current_app.extensions["line_drive"]["messenger"]
