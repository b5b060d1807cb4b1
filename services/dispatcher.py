"""
Command dispatcher for the file drive bot.

Text messages are commands keyed by their first word:

    upload [category] filename   start an upload; the next message is the file
    open filename                reply with the file (text or image)
    list [category]              list categories, or the files in one
    rename old new               rename the metadata entry
    delete filename              delete the object and its metadata

While an upload is pending, any non-command text becomes the file's content
(stored as <filename>.txt), and an image or file message becomes its bytes.
"""
import posixpath
from typing import Callable, List

import requests
from flask import current_app

from models.messages import (
    FilePayload,
    ImagePayload,
    ImageReply,
    InboundMessage,
    OtherPayload,
    Reply,
    TextPayload,
    TextReply,
)
from services.content_resolver import ContentResolver, classify, content_type_for, sniff_extension
from services.errors import FileNotFoundInStore, MessagingError, MetadataStoreError, ObjectStoreError
from services.metadata_store import MetadataStore
from services.object_store import ObjectStore
from services.session_store import SessionStore
from utils.security import is_safe_filename

DEFAULT_CATEGORY = "default"

USAGE_UPLOAD = "Usage: upload [category] filename"
USAGE_OPEN = "Usage: open filename"
USAGE_RENAME = "Usage: rename <old_filename> <new_filename>"
USAGE_DELETE = "Usage: delete <filename>"
USAGE_HELP = "USAGE:\nupload,open,list,rename,delete"
USAGE_OTHER_MESSAGE = "Use 'upload' to upload\nUse 'open' to open files"

MSG_SEND_FILE = "Send file:"
MSG_INVALID_FILENAME = "Error: invalid filename"
MSG_INVALID_CATEGORY = "Error: invalid category"
MSG_METADATA_ERROR = "Error saving file metadata."
MSG_NOT_FOUND = "Error: File not found."
MSG_LOOKUP_ERROR = "Error: Could not look up file."
MSG_READ_ERROR = "Error reading file content."
MSG_UNSUPPORTED = "Unsupported file type."
MSG_NO_FILES = "No files found."
MSG_LIST_ERROR = "Error listing files."
MSG_RENAMED = "File renamed successfully!"
MSG_RENAME_ERROR = "Error renaming file."
MSG_DELETED = "File deleted successfully!"
MSG_DELETE_ERROR = "Error deleting file."
MSG_UPLOADED = "Upload successful!"
MSG_UPLOAD_ERROR = "Error uploading file."
MSG_RETRIEVE_ERROR = "Error retrieving file."
MSG_UPLOAD_FIRST = "Please use 'upload [category] filename' first before sending a file."

# LINE always delivers image messages as JPEG.
IMAGE_MESSAGE_EXTENSION = ".jpeg"


class CommandDispatcher:
    def __init__(
        self,
        metadata: MetadataStore,
        objects: ObjectStore,
        sessions: SessionStore,
        resolver: ContentResolver,
        fetch_content: Callable[[str], bytes],
    ) -> None:
        self._metadata = metadata
        self._objects = objects
        self._sessions = sessions
        self._resolver = resolver
        self._fetch_content = fetch_content
        self._commands = {
            "upload": self._upload,
            "open": self._open,
            "list": self._list,
            "rename": self._rename,
            "delete": self._delete,
        }

    def handle(self, message: InboundMessage) -> Reply:
        payload = message.payload
        if isinstance(payload, TextPayload):
            return self._handle_text(message.user_id, payload.text)
        if isinstance(payload, (ImagePayload, FilePayload)):
            return self._handle_binary(message.user_id, payload)
        if isinstance(payload, OtherPayload):
            return TextReply(USAGE_OTHER_MESSAGE)
        raise TypeError(f"Unhandled payload type: {type(payload).__name__}")

    # -------------------------------------------------------------------------
    # Text messages
    # -------------------------------------------------------------------------
    def _handle_text(self, user_id: str, text: str) -> Reply:
        words = text.split()
        command = self._commands.get(words[0]) if words else None
        if command is not None:
            return command(user_id, words[1:])

        pending, exists = self._sessions.peek(user_id)
        if not exists:
            return TextReply(USAGE_HELP)
        return self._store_pending(user_id, pending, pending + ".txt", text.encode("utf-8"))

    def _upload(self, user_id: str, args: List[str]) -> Reply:
        if len(args) not in (1, 2):
            return TextReply(USAGE_UPLOAD)
        if len(args) == 1:
            category, file_name = DEFAULT_CATEGORY, args[0]
        else:
            category, file_name = args

        if not is_safe_filename(file_name):
            return TextReply(MSG_INVALID_FILENAME)
        if not is_safe_filename(category):
            return TextReply(MSG_INVALID_CATEGORY)

        try:
            self._metadata.insert(user_id, file_name, category)
        except MetadataStoreError:
            return TextReply(MSG_METADATA_ERROR)

        self._sessions.begin(user_id, file_name)
        return TextReply(MSG_SEND_FILE)

    def _open(self, user_id: str, args: List[str]) -> Reply:
        if not args:
            return TextReply(USAGE_OPEN)
        file_name = args[0]

        try:
            url = self._resolver.resolve(file_name)
        except FileNotFoundInStore:
            return TextReply(MSG_NOT_FOUND)
        except ObjectStoreError:
            return TextReply(MSG_LOOKUP_ERROR)

        kind = classify(url)
        if kind == "text":
            try:
                return TextReply(self._resolver.fetch_text(url))
            except requests.RequestException as e:
                current_app.logger.error(f"Failed to fetch text for '{file_name}' from {url}: {e}")
                return TextReply(MSG_READ_ERROR)
        if kind == "image":
            return ImageReply(original_url=url, preview_url=url)
        return TextReply(MSG_UNSUPPORTED)

    def _list(self, user_id: str, args: List[str]) -> Reply:
        try:
            if args:
                entries = self._metadata.list_file_names_by_category(args[0])
                heading = "Files:"
            else:
                entries = self._metadata.list_distinct_categories()
                heading = "Categories:"
        except MetadataStoreError:
            return TextReply(MSG_LIST_ERROR)

        if not entries:
            return TextReply(MSG_NO_FILES)
        return TextReply(heading + "\n" + "\n".join(entries))

    def _rename(self, user_id: str, args: List[str]) -> Reply:
        if len(args) < 2:
            return TextReply(USAGE_RENAME)
        old_name, new_name = args[0], args[1]
        if not is_safe_filename(new_name):
            return TextReply(MSG_INVALID_FILENAME)

        # The object in the bucket keeps its old key.
        try:
            renamed = self._metadata.rename(old_name, new_name)
        except MetadataStoreError:
            return TextReply(MSG_RENAME_ERROR)
        if not renamed:
            return TextReply(MSG_NOT_FOUND)
        return TextReply(MSG_RENAMED)

    def _delete(self, user_id: str, args: List[str]) -> Reply:
        if not args:
            return TextReply(USAGE_DELETE)
        file_name = args[0]

        url = None
        try:
            url = self._resolver.resolve(file_name)
        except FileNotFoundInStore:
            current_app.logger.info(f"Delete requested for unknown file '{file_name}'")
        except ObjectStoreError:
            return TextReply(MSG_DELETE_ERROR)

        # Object first, then metadata. There is no rollback between the two.
        key = self._objects.key_from_url(url) if url else ""
        if key and key != file_name and posixpath.splitext(posixpath.basename(key))[0] != file_name:
            current_app.logger.warning(f"Delete of '{file_name}' resolved to a different object '{key}'")
        try:
            if key:
                self._objects.delete_object(key)
            deleted = self._metadata.delete(file_name)
        except (ObjectStoreError, MetadataStoreError):
            return TextReply(MSG_DELETE_ERROR)

        if not key and not deleted:
            return TextReply(MSG_DELETE_ERROR)
        return TextReply(MSG_DELETED)

    # -------------------------------------------------------------------------
    # Image / file messages
    # -------------------------------------------------------------------------
    def _handle_binary(self, user_id: str, payload) -> Reply:
        pending, exists = self._sessions.peek(user_id)
        if not exists:
            return TextReply(MSG_UPLOAD_FIRST)

        try:
            data = self._fetch_content(payload.message_id)
        except MessagingError as e:
            current_app.logger.error(f"Failed to retrieve content for message {payload.message_id}: {e}")
            return TextReply(MSG_RETRIEVE_ERROR)

        if isinstance(payload, FilePayload):
            ext = sniff_extension(data, declared_name=payload.file_name)
        else:
            ext = sniff_extension(data, default=IMAGE_MESSAGE_EXTENSION)
        return self._store_pending(user_id, pending, pending + ext, data)

    def _store_pending(self, user_id: str, file_name: str, key: str, data: bytes) -> Reply:
        """Upload the pending file's bytes, record the URL, then end the session."""
        try:
            url = self._objects.put(key, data, content_type_for(key, data))
        except ObjectStoreError:
            return TextReply(MSG_UPLOAD_ERROR)

        try:
            self._metadata.update_content_url(file_name, url)
        except MetadataStoreError:
            return TextReply(MSG_METADATA_ERROR)

        self._sessions.consume(user_id)
        current_app.logger.info(f"Stored '{file_name}' for user {user_id} at {url}")
        return TextReply(MSG_UPLOADED)


def build_dispatcher() -> CommandDispatcher:
    """Dispatcher wired to the current application's services."""
    services = current_app.extensions["line_drive"]
    metadata = MetadataStore()
    objects = services["object_store"]
    resolver = ContentResolver(metadata, objects, fetch_timeout=current_app.config.get("TEXT_FETCH_TIMEOUT", 10.0))
    return CommandDispatcher(
        metadata=metadata,
        objects=objects,
        sessions=services["session_store"],
        resolver=resolver,
        fetch_content=services["messenger"].fetch_message_content,
    )
