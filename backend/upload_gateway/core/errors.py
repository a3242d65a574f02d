class UploadError(Exception):
    """Base class for failures reported to the client as a JSON error body."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ParseError(UploadError):
    """Raised when the multipart body or its headers are malformed."""


class IncompleteError(UploadError):
    """Raised when the body ends before the closing multipart boundary."""


class InvalidTypeError(UploadError):
    """Raised when the file's content type is not in the allow-list."""


class PayloadTooLargeError(UploadError):
    """Raised as soon as the file grows past the configured ceiling."""


class MissingFileError(UploadError):
    """Raised when the request carries no file part."""

    def __init__(self, message: str = "No file uploaded") -> None:
        super().__init__(message)


class StorageWriteError(UploadError):
    """Raised when the storage backend could not persist the bytes."""

    status_code = 500


class StorageVisibilityWarning(UserWarning):
    """The object was stored but could not be made publicly readable."""
