"""Error kinds raised by the orchestration services.

Every error carries an HTTP-ish ``status_code`` and a short ``kind`` so the
collaborator layer can build the ``{success, error}`` envelope without
inspecting exception types one by one.
"""


class RemexError(Exception):
    """Base class for orchestration failures."""

    status_code = 500
    kind = "error"


class ValidationError(RemexError):
    """Malformed request rejected before reaching a service."""

    status_code = 400
    kind = "validation_error"


class NotFoundError(RemexError):
    """Unknown connection, execution or job id."""

    status_code = 404
    kind = "not_found"

    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class ConnectionNotEstablishedError(RemexError):
    """Operation needs a connected connection."""

    status_code = 409
    kind = "connection_not_established"

    def __init__(self, connection_id: str, status: str) -> None:
        self.connection_id = connection_id
        self.status = status
        super().__init__(
            f"Connection not established: {connection_id} (status={status})"
        )


class InvalidStateError(RemexError):
    """Requested transition is not allowed from the current state."""

    status_code = 409
    kind = "invalid_state"


class TransportError(RemexError):
    """Handshake or transport failure against a remote host."""

    status_code = 502
    kind = "transport_error"

    def __init__(
        self,
        message: str,
        host: str | None = None,
        path: str | None = None,
    ) -> None:
        self.host = host
        self.path = path
        super().__init__(message)


class TransferFailedError(TransportError):
    """A staging copy failed part way; earlier copies are left in place."""

    kind = "transfer_failed"

    def __init__(self, path: str, original_error: Exception) -> None:
        self.original_error = original_error
        super().__init__(f"Transfer failed for {path}: {original_error}", path=path)


class ProcessFailureError(RemexError):
    """Spawn error or non-zero exit of a remote script."""

    status_code = 500
    kind = "process_failure"

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
        execution_id: str | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        self.execution_id = execution_id
        super().__init__(message)
