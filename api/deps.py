"""
Shared router dependencies and domain-error translation
"""
from fastapi import HTTPException, Request

from core.action_processor import ActionProcessor
from core.exceptions import (
    ActionConflict,
    HousekeepingException,
    InvalidInput,
    RecordNotFound,
    StoreError,
)


def get_processor(request: Request) -> ActionProcessor:
    return request.app.state.processor


def to_http_exception(error: HousekeepingException) -> HTTPException:
    """
    ValidationError -> 400, NotFound -> 404, Conflict -> 409, Internal -> 500
    """
    if isinstance(error, InvalidInput):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, RecordNotFound):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ActionConflict):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, StoreError):
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))
