"""Typed responses of the workflow server.

All decoding of server payloads happens here; callers only see these models.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from flowhut.errors import ApiError
from flowhut.ledger.models import JobStatus


class StatusResponse(BaseModel):
    """Payload of the status and abort endpoints."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str

    @property
    def job_status(self) -> JobStatus:
        return JobStatus.from_string(self.status)


class SubmitResponse(StatusResponse):
    """Payload returned when a workflow is accepted."""

    status: str = "Submitted"


def decode(model: type[BaseModel], payload: Any, body: str | None = None) -> Any:
    """Validate a decoded JSON payload into ``model``.

    Raises:
        ApiError: The payload does not have the expected shape.
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ApiError(
            f"Unexpected {model.__name__} payload: {e.error_count()} validation errors",
            body=body,
        ) from e
