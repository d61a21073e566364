"""
Pipeline exceptions.
"""
from fastapi import status


class PipelineError(Exception):
    """Base class. status_code is what the API layer responds with."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RecordNotFoundError(PipelineError):
    status_code = status.HTTP_404_NOT_FOUND


class RecordStoreError(PipelineError):
    """The record store failed or could not be reached during a write."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
