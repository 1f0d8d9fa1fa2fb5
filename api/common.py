"""
api/common.py -- Helpers shared by the v1 routers.

paging()       -- Depends() that reads page / page_size / sort query params into Filters.
apply_patch()  -- copies the fields a client actually sent onto a domain record,
                  enforcing the optional `version` precondition.
forbidden()    -- the 403 HTTPException in the standard error shape.
"""

from fastapi import HTTPException, Query
from pydantic import BaseModel

from core.errors import EditConflictError
from core.filters import Filters


def paging(
    page: int = Query(1, description="1-based page number."),
    page_size: int = Query(20, description="Records per page (bounded by MAX_PAGE_SIZE)."),
    sort: str = Query("id", description="Sort column; prefix with '-' for descending."),
) -> Filters:
    # Range and safelist checks happen in the store, which knows the sortable columns.
    return Filters(page=page, page_size=page_size, sort=sort)


def apply_patch(record, patch: BaseModel) -> None:
    """Apply the fields present in `patch` to `record` in place.

    Fields sent as null are ignored. A `version` that does not match the
    record's current version raises EditConflictError before anything changes.
    """
    changes = patch.model_dump(exclude_unset=True)
    expected = changes.pop("version", None)
    if expected is not None and expected != record.version:
        raise EditConflictError()
    for name, value in changes.items():
        if value is not None:
            setattr(record, name, value)


def forbidden(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=403, detail={"code": code, "message": message})
