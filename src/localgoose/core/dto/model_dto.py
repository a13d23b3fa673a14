"""Model write result DTOs.

[Result Pattern] A write that matches nothing is an expected state: it returns
a successful result with zero counts and a NO_MATCH detail instead of raising.
"""

from typing import Any

from pydantic import Field

from localgoose.core.dto.result_dto import BaseResult


class UpdateResult(BaseResult):
    """Result of ``update_one`` / ``update_many`` / ``replace_one``.

    Attributes:
        matched_count: Records matched by the filter.
        modified_count: Records rewritten.
        upserted_count: Always 0; upserts are not performed.
        upserted_id: Always None.
    """

    matched_count: int = Field(default=0, description="Records matched by the filter")
    modified_count: int = Field(default=0, description="Records rewritten")
    upserted_count: int = Field(default=0, description="Records inserted by upsert")
    upserted_id: Any = Field(default=None, description="Id of the upserted record")


class DeleteResult(BaseResult):
    """Result of ``delete_one`` / ``delete_many``.

    Attributes:
        deleted_count: Number of records removed from the collection.
    """

    deleted_count: int = Field(default=0, description="Records removed")


__all__ = ["UpdateResult", "DeleteResult"]
