"""
Domain failures raised by the engines.

Each failure is an HTTPException carrying a stable message, so routers let
them propagate and the handlers in app.main render the response envelope.
"""

from __future__ import annotations

from fastapi import HTTPException


class DomainError(HTTPException):
    status_code: int = 400
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


# 404
class NotFound(DomainError):
    status_code = 404
    default_detail = "Resource not found"


class OrgNotFound(NotFound):
    default_detail = "Organization not found"


# 400: state conflicts and preconditions
class AlreadyProcessed(DomainError):
    default_detail = "Request has already been processed"


class DuplicatePending(DomainError):
    default_detail = "A pending request already exists for this organization"


class AlreadyMember(DomainError):
    default_detail = "User is already a member of this organization"


class NotMember(DomainError):
    default_detail = "You are not a member of this organization"


class InactiveMember(DomainError):
    default_detail = "Your membership in this organization is not active"


# 409
class Conflict(DomainError):
    status_code = 409
    default_detail = "Resource already exists"


# 403
class Forbidden(DomainError):
    status_code = 403
    default_detail = "You do not have permission to perform this action"


# 422
class InvalidImage(DomainError):
    status_code = 422
    default_detail = "Image could not be processed"


# 502
class UpstreamFailure(DomainError):
    status_code = 502
    default_detail = "Image service is unavailable"
