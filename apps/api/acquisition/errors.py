"""Errors raised by the content acquisition adapters."""


class AcquisitionError(Exception):
    """Base class for failures while obtaining transcript content."""


class UnsupportedSourceError(AcquisitionError):
    pass


class MetadataUnavailableError(AcquisitionError):
    pass


class AudioDownloadError(AcquisitionError):
    pass


class CaptionsUnavailableError(AcquisitionError):
    pass


class LocalTranscriptionError(AcquisitionError):
    pass


class RemoteTranscriptionError(AcquisitionError):
    pass


class RemoteRateLimitError(RemoteTranscriptionError):
    """The remote provider refused work because a usage quota is exhausted."""

    def __init__(self, message: str, *, retry_after_ms: int | None = None):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class ProviderConfigurationError(RemoteTranscriptionError):
    pass
