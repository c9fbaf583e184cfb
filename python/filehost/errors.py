class FileHostError(Exception):
    """Base class for all filehost errors."""

class ValidationError(FileHostError):
    """Error raised when an input (local file, filename, request body) is invalid."""

class PayloadTooLargeError(ValidationError):
    """Error raised when a request body exceeds the configured size limit."""

class AuthorizationError(FileHostError):
    """Error raised when the shared access key does not match."""

class MissingHeaderError(AuthorizationError):
    """Error raised when a required request header is absent."""

class ConfigurationError(FileHostError):
    """Error raised when a required setting is absent or invalid."""

class StorageError(FileHostError):
    """Error raised when the storage root cannot be created or written to."""

class TransportError(FileHostError):
    """Error raised when a request to the server could not be completed."""

class UploadFailedError(TransportError):
    """Error raised when the server answers an upload with a non-success status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Upload failed ({status_code}): {message or 'no message'}")

class ProtocolMismatchError(FileHostError):
    """Error raised when the server returns a different number of paths than parts sent."""
