"""Error taxonomy shared by the coordination layer."""


class PeerDeskError(Exception):
    """Base class for every failure surfaced to callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(PeerDeskError):
    """Malformed input caught before any network call."""

    status_code = 400


class EnvelopeError(ValidationError):
    """A realtime frame that does not match the envelope schema."""


class PreconditionError(PeerDeskError):
    """A workflow stage was advanced without its required selection."""

    status_code = 409


class ServiceError(PeerDeskError):
    """The backend answered with a non-success response."""

    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class NetworkError(ServiceError):
    """Transport-level failure: backend unreachable, timeout or channel drop."""

    status_code = 503
