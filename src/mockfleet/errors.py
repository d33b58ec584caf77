"""MockFleet exception classes."""

from dataclasses import dataclass


@dataclass
class FieldError:
    """One failed field check, reported alongside its siblings."""

    field: str
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "code": self.code, "message": self.message}


class MockFleetError(Exception):
    """
    Base exception for MockFleet.

    Every subclass has a stable CamelCase ``code`` and the HTTP status the
    control API answers with.
    """

    code = "InternalError"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(MockFleetError):
    """Payload failed one or more field validators."""

    code = "InvalidPayload"
    status_code = 400

    def __init__(self, errors: list[FieldError], message: str = "invalid payload"):
        self.errors = errors
        fields = ", ".join(e.field for e in errors)
        super().__init__(f"{message}: {fields}" if fields else message)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = [e.to_dict() for e in self.errors]
        return body


class NotFoundError(MockFleetError):
    """Requested server UUID is not known."""

    code = "ResourceNotFound"
    status_code = 404

    def __init__(self, uuid: str):
        self.uuid = uuid
        super().__init__(f"no such server: {uuid}")


class ConflictError(MockFleetError):
    """Server UUID already exists."""

    code = "Conflict"
    status_code = 409

    def __init__(self, uuid: str):
        self.uuid = uuid
        super().__init__(f"CN already exists: {uuid}")


class ExternalCollaboratorError(MockFleetError):
    """A host metadata, address or boot-config lookup failed."""

    code = "ExternalCollaboratorError"
    status_code = 502

    def __init__(self, message: str, stderr: str | None = None):
        self.stderr = stderr
        super().__init__(message)


class MetadataError(ExternalCollaboratorError):
    """Host metadata query failed."""

    code = "MetadataError"


class AddressAssignmentError(ExternalCollaboratorError):
    """Admin NIC address could not be obtained."""

    code = "AddressAssignmentError"


class BootConfigError(ExternalCollaboratorError):
    """Boot parameters could not be fetched or parsed."""

    code = "BootConfigError"


class LedgerError(MockFleetError):
    """Identity ledger could not be read or persisted."""

    code = "LedgerError"


class ReconcileError(MockFleetError):
    """At least one node failed to (re)start during reconciliation."""

    code = "ReconcileError"

    def __init__(self, uuid: str, cause: BaseException, failed: int = 1):
        self.uuid = uuid
        self.cause = cause
        self.failed = failed
        super().__init__(
            f"{failed} node(s) failed to reconcile, first was {uuid}: {cause}"
        )
