"""
api/routes/v1/children.py -- Child record REST endpoints.

Routes:
  GET    /api/v1/children               -- paged, filtered, sorted listing
  POST   /api/v1/children               -- admit a child; child_id is assigned here
  GET    /api/v1/children/search        -- ranked free-text search
  GET    /api/v1/children/autocomplete  -- prefix suggestions for a field
  GET    /api/v1/children/stats         -- counts by status, gender and age group
  GET    /api/v1/children/{id}          -- one record with its photos and documents
  PATCH  /api/v1/children/{id}          -- partial update; child_id is immutable
  DELETE /api/v1/children/{id}          -- archive (admin, super_admin); the row is kept

The static paths (/search, /autocomplete, /stats) are registered before
/{child_pk} so they are not captured as an ID.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import AutocompleteField, ChildCreate, ChildOut, ChildUpdate, Envelope, Pagination
from auth.dependencies import get_current_account, require_capability, require_roles
from auth.models import Account
from core.constants import ChildStatus, EducationLevel, Gender, NigerianState
from records.models import Child
from records.store import RecordStore

logger = logging.getLogger("tabitha.api")

# Auth policy:
# - every route requires auth (router-level dependency)
# - reads need children:read, POST children:create, PATCH children:update
# - DELETE is limited to admin and super_admin (require_roles)
router = APIRouter(dependencies=[Depends(get_current_account)])

_DUPLICATE_CERTIFICATE = {
    "code": "duplicate_birth_certificate",
    "message": "A child with this birth certificate number already exists.",
}


def _get_or_404(store: RecordStore, child_pk: int) -> Child:
    child = store.get_child(child_pk)
    if child is None:
        raise HTTPException(
            status_code=404, detail={"code": "not_found", "message": "No child found with that ID."}
        )
    return child


@router.get("/children", response_model=Envelope[list[ChildOut]])
def list_children(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort: str = Query(default="-admission_date", max_length=40),
    search: Optional[str] = Query(default=None, max_length=100),
    current_status: Optional[ChildStatus] = None,
    gender: Optional[Gender] = None,
    state_of_origin: Optional[NigerianState] = None,
    education_level: Optional[EducationLevel] = None,
    room_assignment: Optional[str] = Query(default=None, max_length=50),
    admitted_from: Optional[date] = None,
    admitted_to: Optional[date] = None,
    account: Account = Depends(require_capability("children", "read")),
) -> Envelope[list[ChildOut]]:
    """List children. sort is a column name, prefixed with "-" for descending."""
    store: RecordStore = request.app.state.record_store
    try:
        children, total = store.list_children(
            page=page,
            limit=limit,
            sort=sort,
            search=search,
            admitted_from=admitted_from.isoformat() if admitted_from else None,
            admitted_to=admitted_to.isoformat() if admitted_to else None,
            current_status=current_status.value if current_status else None,
            gender=gender.value if gender else None,
            state_of_origin=state_of_origin.value if state_of_origin else None,
            education_level=education_level.value if education_level else None,
            room_assignment=room_assignment,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_sort", "message": str(exc)}) from exc
    return Envelope[list[ChildOut]](
        data=[ChildOut.from_child(c) for c in children],
        results=len(children),
        pagination=Pagination.build(page, limit, total),
    )


@router.post("/children", response_model=Envelope[ChildOut], status_code=201)
def create_child(
    request: Request,
    body: ChildCreate,
    account: Account = Depends(require_capability("children", "create")),
) -> Envelope[ChildOut]:
    store: RecordStore = request.app.state.record_store
    fields = body.model_dump(mode="json", exclude_none=True)
    try:
        pk = store.create_child(Child(created_by=account.id, **fields))
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail=_DUPLICATE_CERTIFICATE) from exc
    child = store.get_child(pk)
    logger.info("Child %s admitted by %s", child.child_id, account.employee_id)
    return Envelope[ChildOut](data=ChildOut.from_child(child), message="Child record created.")


@router.get("/children/search", response_model=Envelope[list[ChildOut]])
def search_children(
    request: Request,
    query: str = Query(min_length=1, max_length=100),
    limit: int = Query(default=20, ge=1, le=100),
    account: Account = Depends(require_capability("children", "read")),
) -> Envelope[list[ChildOut]]:
    """Ranked search over names, child_id, location, school and case notes."""
    store: RecordStore = request.app.state.record_store
    results = store.search_children(query, limit=limit)
    return Envelope[list[ChildOut]](data=[ChildOut.from_child(c) for c in results], results=len(results))


@router.get("/children/autocomplete", response_model=Envelope[list[str]])
def autocomplete(
    request: Request,
    field: AutocompleteField,
    query: str = Query(min_length=1, max_length=50),
    limit: int = Query(default=10, ge=1, le=25),
    account: Account = Depends(require_capability("children", "read")),
) -> Envelope[list[str]]:
    store: RecordStore = request.app.state.record_store
    suggestions = store.autocomplete(field.value, query, limit=limit)
    return Envelope[list[str]](data=suggestions, results=len(suggestions))


@router.get("/children/stats", response_model=Envelope[dict])
def child_stats(
    request: Request, account: Account = Depends(require_capability("children", "read"))
) -> Envelope[dict]:
    store: RecordStore = request.app.state.record_store
    return Envelope[dict](data=store.child_stats())


@router.get("/children/{child_pk}", response_model=Envelope[ChildOut])
def get_child(
    request: Request, child_pk: int, account: Account = Depends(require_capability("children", "read"))
) -> Envelope[ChildOut]:
    store: RecordStore = request.app.state.record_store
    child = _get_or_404(store, child_pk)
    attachments = store.list_attachments("children", child.id)
    return Envelope[ChildOut](data=ChildOut.from_child(child, attachments))


@router.patch("/children/{child_pk}", response_model=Envelope[ChildOut])
def update_child(
    request: Request,
    child_pk: int,
    body: ChildUpdate,
    account: Account = Depends(require_capability("children", "update")),
) -> Envelope[ChildOut]:
    """Partial update. Only the keys present in the body are written."""
    store: RecordStore = request.app.state.record_store
    _get_or_404(store, child_pk)
    fields = body.model_dump(mode="json", exclude_unset=True)
    if not fields:
        raise HTTPException(
            status_code=400, detail={"code": "no_changes", "message": "No fields were provided to update."}
        )
    try:
        store.update_child(child_pk, modified_by=account.id, **fields)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail=_DUPLICATE_CERTIFICATE) from exc
    child = store.get_child(child_pk)
    return Envelope[ChildOut](data=ChildOut.from_child(child, store.list_attachments("children", child.id)))


@router.delete("/children/{child_pk}", response_model=Envelope[ChildOut])
def archive_child(
    request: Request,
    child_pk: int,
    account: Account = Depends(require_roles("admin", "super_admin")),
) -> Envelope[ChildOut]:
    """Archive a record: status Exited, exit_date today. Nothing is removed."""
    store: RecordStore = request.app.state.record_store
    _get_or_404(store, child_pk)
    store.archive_child(child_pk, modified_by=account.id)
    child = store.get_child(child_pk)
    logger.info("Child %s archived by %s", child.child_id, account.employee_id)
    return Envelope[ChildOut](data=ChildOut.from_child(child), message="Child record archived.")
