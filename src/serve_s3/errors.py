"""HTTP-status-bearing error definitions for serve-s3."""


class ServeS3Error(Exception):
    """An error with code, message, and HTTP status.

    Every failure that reaches a reply strategy is an instance of this class
    (see ``normalize_error``).

    Attributes:
        code: Short error code string (e.g. "NotFound", "Conflict").
        message: Human-readable error description.
        http_status: The HTTP status code to return.
        extra_fields: Additional key-value pairs to include in the error body.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 400,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status code (default 400).
            extra_fields: Optional extra body fields.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra_fields = extra_fields or {}

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-serializable error body."""
        body: dict[str, object] = {
            "code": self.code,
            "message": self.message,
            "status_code": self.http_status,
        }
        body.update(self.extra_fields)
        return body


# -- Pre-defined errors --------------------------------------------------------


class ConfigurationError(ServeS3Error):
    """The route configuration cannot resolve a required value (server fault)."""

    def __init__(self, message: str = "Invalid route configuration") -> None:
        super().__init__(code="ConfigurationError", message=message, http_status=500)


class NotFound(ServeS3Error):
    """The requested object does not exist."""

    def __init__(self, bucket: str = "", key: str = "", message: str = "") -> None:
        if not message:
            message = (
                f"could not find object: s3://{bucket}/{key}"
                if bucket or key
                else "The specified key does not exist."
            )
        super().__init__(
            code="NotFound",
            message=message,
            http_status=404,
            extra_fields={"bucket": bucket, "key": key} if bucket or key else {},
        )


class Conflict(ServeS3Error):
    """An upload targets a key that already exists."""

    def __init__(self, bucket: str = "", key: str = "") -> None:
        super().__init__(
            code="Conflict",
            message=f"the object s3://{bucket}/{key} already exists",
            http_status=409,
            extra_fields={"bucket": bucket, "key": key},
        )


class UnsupportedMediaType(ServeS3Error):
    """The request or one of its parts has a media type that is not accepted."""

    def __init__(self, message: str = "Unsupported Media Type") -> None:
        super().__init__(code="UnsupportedMediaType", message=message, http_status=415)


class UnprocessableEntity(ServeS3Error):
    """The request is well-formed but cannot be processed."""

    def __init__(self, message: str = "Unprocessable Entity") -> None:
        super().__init__(code="UnprocessableEntity", message=message, http_status=422)


class InvalidArgument(ServeS3Error):
    """An invalid request argument was provided."""

    def __init__(self, message: str = "Invalid Argument") -> None:
        super().__init__(code="InvalidArgument", message=message, http_status=400)


class PayloadTooLarge(ServeS3Error):
    """The upload exceeds the route's size limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            code="PayloadTooLarge",
            message=f"upload exceeds the maximum of {limit} bytes",
            http_status=413,
            extra_fields={"max_bytes": str(limit)},
        )


class StorageError(ServeS3Error):
    """The storage backend reported a failure; its status is passed through."""

    def __init__(
        self,
        http_status: int = 500,
        message: str = "",
        code: str = "StorageError",
        bucket: str = "",
        key: str = "",
    ) -> None:
        extra: dict[str, str] = {}
        if bucket:
            extra["bucket"] = bucket
        if key:
            extra["key"] = key
        super().__init__(
            code=code,
            message=message or f"storage backend responded with status {http_status}",
            http_status=http_status,
            extra_fields=extra,
        )


class InternalError(ServeS3Error):
    """An internal server error occurred."""

    def __init__(self, message: str = "Internal Error") -> None:
        super().__init__(code="InternalError", message=message, http_status=500)


def normalize_error(exc: BaseException) -> ServeS3Error:
    """Return ``exc`` as a ``ServeS3Error``, wrapping foreign exceptions.

    Args:
        exc: Any exception raised by a pipeline stage or resolver.

    Returns:
        The exception itself if it already carries an HTTP status, otherwise
        an ``InternalError`` chained to the original exception.
    """
    if isinstance(exc, ServeS3Error):
        return exc
    wrapped = InternalError(str(exc) or exc.__class__.__name__)
    wrapped.__cause__ = exc
    return wrapped
