"""Error definitions for partcopy.

Every error carries a short code, a human-readable message, and the HTTP
status the ingress endpoint would use for it. Queue workers use the class
to decide between dropping a message and letting the transport redeliver it.
"""


class PartCopyError(Exception):
    """Base class for all partcopy errors.

    Attributes:
        code: Short error code (e.g. "InvalidSize", "UnknownPart").
        message: Human-readable error description.
        http_status: The HTTP status code to return at the ingress.
    """

    def __init__(self, code: str, message: str, http_status: int = 500) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status code (default 500).
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status


# -- Ingress input -------------------------------------------------------------


class ValidationError(PartCopyError):
    """Bad ingress input. Raised before any side effect is performed."""

    def __init__(self, message: str = "Invalid request body") -> None:
        super().__init__(code="ValidationError", message=message, http_status=400)


class InvalidSizeError(ValidationError):
    """File size or part size is not a positive integer."""

    def __init__(self, message: str = "Invalid file size or part size") -> None:
        super().__init__(message=message)
        self.code = "InvalidSize"


# -- Transport-retriable failures ----------------------------------------------


class TransientIOError(PartCopyError):
    """A source read or destination call failed; the message should be retried."""

    def __init__(self, message: str = "Upstream I/O failure") -> None:
        super().__init__(code="TransientIOError", message=message, http_status=502)


class FatalAssemblyError(PartCopyError):
    """The destination rejected complete-multipart-upload."""

    def __init__(self, message: str = "Destination rejected multipart completion") -> None:
        super().__init__(code="FatalAssemblyError", message=message, http_status=502)


# -- Structurally invalid messages ---------------------------------------------


class ProtocolError(PartCopyError):
    """A queue message cannot be processed as delivered. Never retried."""

    def __init__(self, message: str = "Malformed message") -> None:
        super().__init__(code="ProtocolError", message=message, http_status=400)


class UnknownPart(ProtocolError):
    """A message referenced a part index that is not in the store."""

    def __init__(self, session_id: str = "", part_index: int | None = None) -> None:
        super().__init__(
            message=f"Unknown part {part_index} for session {session_id}",
        )
        self.code = "UnknownPart"
        self.session_id = session_id
        self.part_index = part_index
