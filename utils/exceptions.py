"""Custom exception classes used across the service."""


class ServiceError(RuntimeError):
    """Base class for domain-specific exceptions."""

    status_code = 500


class InvalidRequestError(ServiceError):
    """Raised when request validation fails."""

    status_code = 400


class InvalidFormatError(InvalidRequestError):
    """Raised when the requested output format is not allowed for the media type."""


class JobNotFoundError(ServiceError):
    """Raised when a job id is unknown to the registry."""

    status_code = 404


class NotReadyError(ServiceError):
    """Raised when a job's artifact cannot be delivered (missing job or file)."""

    status_code = 404


class FetchFailedError(ServiceError):
    """Raised when the source media could not be downloaded."""


class TranscodeSpawnError(ServiceError):
    """Raised when the transcoder process could not be started."""


class CatalogError(ServiceError):
    """Raised when metadata for a content item cannot be retrieved."""


class StreamFailedError(ServiceError):
    """Raised when streaming an artifact to the client fails."""
