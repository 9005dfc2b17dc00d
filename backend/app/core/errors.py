"""
Error taxonomy shared by services, integration clients and the API layer.

Services return these as ``Err`` values; integration clients raise the
integration errors from inside worker tasks. Each kind knows the HTTP status
it is rendered with.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Violation:
    """A single failed field constraint."""
    field: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "reason": self.reason}


class UmbrellaError(Exception):
    """Base class for every classified application error."""

    kind = "UnclassifiedError"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        """Extra fields rendered in the error body."""
        return {}


class ValidationError(UmbrellaError):
    """Caller-fixable input problems; lists every violated constraint."""

    kind = "ValidationError"
    status_code = 400

    def __init__(self, violations: List[Violation], message: str = "Validation failed"):
        super().__init__(message)
        self.violations = list(violations)

    @classmethod
    def single(cls, field: str, reason: str) -> "ValidationError":
        return cls([Violation(field, reason)])

    def details(self) -> Dict[str, Any]:
        return {"violations": [v.to_dict() for v in self.violations]}


class NotFoundError(UmbrellaError):
    kind = "NotFoundError"
    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} not found with id: {identifier}")
        self.resource = resource
        self.identifier = identifier

    def details(self) -> Dict[str, Any]:
        return {"resource": self.resource, "identifier": str(self.identifier)}


class IllegalStateError(UmbrellaError):
    """A lifecycle transition that the current status does not allow."""

    kind = "IllegalStateError"
    status_code = 400

    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None):
        super().__init__(message)
        self.current = current
        self.target = target

    def details(self) -> Dict[str, Any]:
        body = {}
        if self.current is not None:
            body["currentStatus"] = self.current
        if self.target is not None:
            body["targetStatus"] = self.target
        return body


class AuthenticationError(UmbrellaError):
    kind = "AuthenticationError"
    status_code = 401


class BusinessRuleError(UmbrellaError):
    kind = "BusinessRuleError"
    status_code = 400


class ConcurrentModificationError(UmbrellaError):
    """Another writer committed first; the caller may reload and retry."""

    kind = "ConcurrentModificationError"
    status_code = 409

    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} {identifier} was modified concurrently")
        self.resource = resource
        self.identifier = identifier

    def details(self) -> Dict[str, Any]:
        return {"resource": self.resource, "identifier": str(self.identifier)}


class IntegrationError(UmbrellaError):
    """Failure talking to an external system."""

    kind = "IntegrationError"
    status_code = 502

    def __init__(self, integration: str, message: str):
        super().__init__(message)
        self.integration = integration

    def details(self) -> Dict[str, Any]:
        return {"integration": self.integration}


class IntegrationTimeoutError(IntegrationError):
    kind = "IntegrationTimeoutError"
    status_code = 504


class IntegrationUnavailableError(IntegrationError):
    kind = "IntegrationUnavailableError"
    status_code = 502


class IntegrationRejectedError(IntegrationError):
    """The remote system refused the request (4xx or a decline); never retried."""

    kind = "IntegrationRejectedError"
    status_code = 502

    def __init__(self, integration: str, message: str, remote_status: Optional[int] = None):
        super().__init__(integration, message)
        self.remote_status = remote_status

    def details(self) -> Dict[str, Any]:
        body = {"integration": self.integration}
        if self.remote_status is not None:
            body["remoteStatus"] = self.remote_status
        return body
