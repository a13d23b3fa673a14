"""Connection (model registry) result DTOs."""

from typing import Any

from pydantic import Field

from localgoose.core.dto.result_dto import BaseResult


class GetModelResult(BaseResult):
    """Result of looking up a registered model by name.

    [Result Pattern] Check ``result.model`` before use.

    Status codes:
        - success: Model found
        - success + detail(NOT_FOUND): No model registered under that name
    """

    model: Any = Field(default=None, description="Model if found")
    name: str = Field(default="", description="Requested model name")


class RegisterModelResult(BaseResult):
    """Result of registering a schema under a model name.

    Status codes:
        - success + created=True: New model
        - success + created=False + detail(DUPLICATE): Same schema already registered
        - error + detail(ALREADY_EXISTS): Another schema owns the name
        - error + detail(INVALID): Invalid model name
    """

    model: Any = Field(default=None, description="Registered (or existing) model")
    name: str = Field(default="", description="Model name")
    created: bool = Field(default=False, description="True when a new model was built")


__all__ = ["GetModelResult", "RegisterModelResult"]
