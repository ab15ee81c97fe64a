"""Workflow server API client."""

from flowhut.api.client import WorkflowApiClient
from flowhut.api.models import StatusResponse, SubmitResponse

__all__ = ["StatusResponse", "SubmitResponse", "WorkflowApiClient"]
