from typing import Any

from fastapi import HTTPException, status


class NinofiException(HTTPException):
    code = "error"

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code, **self.extra}


class NotFoundError(NinofiException):
    code = "not_found"

    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class AuthenticationRequiredError(NinofiException):
    code = "authentication_required"

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            detail=detail,
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PermissionDeniedError(NinofiException):
    code = "permission_denied"

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class BadRequestError(NinofiException):
    code = "bad_request"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ConflictError(NinofiException):
    code = "conflict"

    def __init__(self, detail: str, extra: dict[str, Any] | None = None):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT, extra=extra)


class InvalidStateTransitionError(ConflictError):
    code = "invalid_state_transition"

    def __init__(self, entity: str, current: str, action: str):
        super().__init__(
            f"Cannot {action.replace('_', ' ')} {entity} in '{current}' state",
            extra={"current_status": current, "action": action},
        )


class InsufficientFundsError(ConflictError):
    code = "insufficient_funds"

    def __init__(self, requested, available):
        super().__init__(
            f"Insufficient escrow funds: requested {requested}, available {available}",
            extra={"requested": str(requested), "available": str(available)},
        )


class DuplicateApplicationError(ConflictError):
    code = "duplicate_application"

    def __init__(self, application_id: str):
        super().__init__(
            "You already have an application for this listing",
            extra={"application_id": application_id},
        )


class AlreadyCheckedInError(ConflictError):
    code = "already_checked_in"

    def __init__(self, check_in_id: str):
        super().__init__(
            "You are already checked in to this project",
            extra={"check_in_id": check_in_id},
        )


class OutOfRangeError(NinofiException):
    code = "out_of_range"

    def __init__(self, distance: float, allowed_radius: float):
        super().__init__(
            detail=f"You are {round(distance)}m away (allowed {round(allowed_radius)}m)",
            status_code=status.HTTP_403_FORBIDDEN,
            extra={
                "message": "You are too far from the job site to check in",
                "distance": round(distance, 1),
                "allowed_radius": allowed_radius,
                "allowedRadius": allowed_radius,
            },
        )


class LocationUnavailableError(NinofiException):
    code = "location_unavailable"

    def __init__(self, detail: str = "Location permission is required to check in"):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ExternalServiceError(NinofiException):
    code = "external_service_error"

    def __init__(self, service: str, detail: str | None = None):
        msg = f"External service error: {service}"
        if detail:
            msg += f" - {detail}"
        super().__init__(detail=msg, status_code=status.HTTP_502_BAD_GATEWAY)
