"""Data Transfer Objects for localgoose operations."""

from localgoose.core.dto.connection_dto import GetModelResult, RegisterModelResult
from localgoose.core.dto.model_dto import DeleteResult, UpdateResult
from localgoose.core.dto.result_dto import BaseResult, StatusCode, StatusDetail

__all__ = [
    "BaseResult",
    "StatusDetail",
    "StatusCode",
    "UpdateResult",
    "DeleteResult",
    "GetModelResult",
    "RegisterModelResult",
]
