class MetadataStoreError(RuntimeError):
    """A database operation on file metadata failed."""


class ObjectStoreError(RuntimeError):
    """A call to the object store failed."""


class MessagingError(RuntimeError):
    """A call to the LINE Messaging API failed."""


class InvalidSignature(ValueError):
    """The webhook body does not match its X-Line-Signature header."""


class FileNotFoundInStore(LookupError):
    """Neither the metadata table nor the bucket knows the file."""

    def __init__(self, file_name: str):
        super().__init__(f"File not found: {file_name}")
        self.file_name = file_name
