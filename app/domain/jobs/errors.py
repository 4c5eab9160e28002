"""Transition errors - every rejected attempt carries one enumerable reason"""

from enum import Enum
from typing import Iterable, Optional


class TransitionErrorReason(str, Enum):
    WRONG_STATE = "WRONG_STATE"
    UNAUTHORIZED_ACTOR = "UNAUTHORIZED_ACTOR"
    OUT_OF_GEOFENCE = "OUT_OF_GEOFENCE"
    MISSING_PREREQUISITE = "MISSING_PREREQUISITE"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    INVALID_INPUT = "INVALID_INPUT"


class TransitionError(ValueError):
    """Base class for rejected job operations. The job record is never modified."""

    reason: TransitionErrorReason = TransitionErrorReason.INVALID_INPUT

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id

    def to_dict(self) -> dict:
        return {"reason": self.reason.value, "message": self.message, "job_id": self.job_id}


class WrongStateError(TransitionError):
    reason = TransitionErrorReason.WRONG_STATE

    def __init__(self, job_id: str, operation: str, current_state: str, allowed: Iterable[str]):
        allowed_list = sorted(str(getattr(s, "value", s)) for s in allowed)
        super().__init__(
            f"Cannot {operation} while job is {current_state} (allowed from: {', '.join(allowed_list)})",
            job_id,
        )
        self.operation = operation
        self.current_state = current_state
        self.allowed = allowed_list


class UnauthorizedActorError(TransitionError):
    reason = TransitionErrorReason.UNAUTHORIZED_ACTOR


class GeofenceError(TransitionError):
    reason = TransitionErrorReason.OUT_OF_GEOFENCE

    def __init__(self, job_id: str, distance_m: float, radius_m: float):
        super().__init__(
            f"You must be within {radius_m:.0f}m of the job location (currently {distance_m:.0f}m away)",
            job_id,
        )
        self.distance_m = distance_m
        self.radius_m = radius_m

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["distance_m"] = round(self.distance_m, 1)
        data["radius_m"] = self.radius_m
        return data


class MissingPrerequisiteError(TransitionError):
    reason = TransitionErrorReason.MISSING_PREREQUISITE


class JobNotFoundError(TransitionError):
    reason = TransitionErrorReason.JOB_NOT_FOUND

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found", job_id)


class ConcurrentTransitionError(TransitionError):
    reason = TransitionErrorReason.CONCURRENT_MODIFICATION

    def __init__(self, job_id: str):
        super().__init__(
            f"Job {job_id} was modified by another request, reload and try again", job_id
        )


class InvalidInputError(TransitionError):
    reason = TransitionErrorReason.INVALID_INPUT
