class PublicationError(Exception):
    """Base exception class for publication related errors.

    Args:
        message (str): Detailed error message
    """

    code = "publication_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidRequest(PublicationError):
    """Raised when an upload is missing its file_id, document_id or content."""

    code = "invalid_request"


class StorageError(PublicationError):
    """Raised when the publication store or the content store fails to read or write."""

    code = "storage_error"


class ContentMissingInconsistency(PublicationError):
    """Raised by a content store when the blob for an actual publication is absent.

    Args:
        file_id (str): File identifier whose content is missing
    """

    code = "content_missing"

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"Content for file_id {file_id!r} is missing")
