"""
api/routes/v1/uploads.py -- Photo and document uploads for children and staff.

Routes:
  POST   /api/v1/uploads/children/{id}/photo                        -- multipart "photo", form is_primary
  POST   /api/v1/uploads/children/{id}/document                     -- multipart "document", form document_type
  POST   /api/v1/uploads/staff/{id}/photo                           -- multipart "photo"; replaces the old one
  GET    /api/v1/uploads/{entity_type}/{entity_id}/files/{file_id}  -- download an attachment
  DELETE /api/v1/uploads/{entity_type}/{entity_id}/files/{file_id}  -- remove an attachment and its file

Security:
  Files are validated in records/files.py (allow-list, size, magic bytes)
  before anything is written, and stored under a random name. Downloads go
  through this router, never a static mount, so every read is authorized.
  Child attachments need children:update to write and children:read to
  read. Staff photos may be managed by the account itself or by anyone
  holding the matching staff capability.

  Handlers are plain functions, so FastAPI runs them in its threadpool and
  file writes and store calls stay off the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from api.limiter import limiter
from api.models import AttachmentOut, Envelope, MessageResponse, attachment_url
from auth.dependencies import get_current_account
from auth.models import Account
from auth.policy import Capability, authorize
from auth.store import AccountStore
from core.constants import DocumentType, EntityType
from records.files import AttachmentRejected, FileStore
from records.models import Attachment
from records.store import RecordStore

logger = logging.getLogger("tabitha.api")

# Auth policy:
# - every route requires auth (router-level dependency)
# - the capability depends on the entity; see _authorize_entity()
router = APIRouter(dependencies=[Depends(get_current_account)])


def _authorize_entity(account: Account, entity_type: str, entity_id: int, action: str) -> None:
    """Raise 403 unless account may perform action on the entity's attachments."""
    if entity_type == EntityType.staff.value and entity_id == account.id:
        return
    module = "children" if entity_type == EntityType.children.value else "staff"
    decision = authorize(account.role, account.permissions, Capability(module, action))
    if not decision.allowed:
        raise HTTPException(status_code=403, detail={"code": "forbidden", "message": decision.reason})


def _ensure_entity(request: Request, entity_type: str, entity_id: int) -> None:
    if entity_type == EntityType.children.value:
        records: RecordStore = request.app.state.record_store
        found = records.get_child(entity_id) is not None
    else:
        accounts: AccountStore = request.app.state.account_store
        found = accounts.get_by_id(entity_id) is not None
    if not found:
        raise HTTPException(
            status_code=404, detail={"code": "not_found", "message": f"No {entity_type} record with ID {entity_id}."}
        )


def _store_upload(
    request: Request,
    upload: UploadFile,
    entity_type: str,
    entity_id: int,
    kind: str,
    account: Account,
    is_primary: bool = False,
    document_type: str | None = None,
) -> Attachment:
    """Validate and write the file, then record it. The file is removed again if the row insert fails."""
    files: FileStore = request.app.state.files
    records: RecordStore = request.app.state.record_store
    # Read one byte past the limit so an oversized upload is detected without buffering all of it.
    data = upload.file.read(files.max_bytes + 1)
    try:
        stored = files.save(entity_type, entity_id, kind, upload.content_type, data)
    except AttachmentRejected as exc:
        raise HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": exc.message}) from exc

    attachment = Attachment(
        entity_type=entity_type,
        entity_id=entity_id,
        kind=kind,
        filename=stored.filename,
        path=stored.path,
        content_type=(upload.content_type or "").split(";")[0].strip().lower(),
        size_bytes=stored.size_bytes,
        original_name=(upload.filename or "")[:255] or None,
        document_type=document_type,
        is_primary=is_primary,
        uploaded_by=account.id,
    )
    try:
        attachment.id = records.add_attachment(attachment)
    except Exception:
        files.delete(stored.path)
        raise
    return records.get_attachment(attachment.id)


# ---------------------------------------------------------------------------
# Children
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/uploads/children/{child_pk}/photo", response_model=Envelope[AttachmentOut], status_code=201)
def upload_child_photo(
    request: Request,
    child_pk: int,
    photo: UploadFile,
    is_primary: bool = Form(default=False),
    account: Account = Depends(get_current_account),
) -> Envelope[AttachmentOut]:
    """Add a photo to a child's record. The first photo becomes primary automatically."""
    _authorize_entity(account, EntityType.children.value, child_pk, "update")
    _ensure_entity(request, EntityType.children.value, child_pk)
    records: RecordStore = request.app.state.record_store
    if not records.list_attachments(EntityType.children.value, child_pk, kind="photo"):
        is_primary = True
    attachment = _store_upload(
        request, photo, EntityType.children.value, child_pk, "photo", account, is_primary=is_primary
    )
    return Envelope[AttachmentOut](data=AttachmentOut.from_attachment(attachment), message="Photo uploaded.")


@limiter.limit("30/minute")
@router.post("/uploads/children/{child_pk}/document", response_model=Envelope[AttachmentOut], status_code=201)
def upload_child_document(
    request: Request,
    child_pk: int,
    document: UploadFile,
    document_type: DocumentType = Form(...),
    account: Account = Depends(get_current_account),
) -> Envelope[AttachmentOut]:
    _authorize_entity(account, EntityType.children.value, child_pk, "update")
    _ensure_entity(request, EntityType.children.value, child_pk)
    attachment = _store_upload(
        request,
        document,
        EntityType.children.value,
        child_pk,
        "document",
        account,
        document_type=document_type.value,
    )
    return Envelope[AttachmentOut](data=AttachmentOut.from_attachment(attachment), message="Document uploaded.")


# ---------------------------------------------------------------------------
# Staff
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/uploads/staff/{staff_pk}/photo", response_model=Envelope[AttachmentOut], status_code=201)
def upload_staff_photo(
    request: Request,
    staff_pk: int,
    photo: UploadFile,
    account: Account = Depends(get_current_account),
) -> Envelope[AttachmentOut]:
    """Set a staff member's profile photo. The previous photo and its file are removed."""
    _authorize_entity(account, EntityType.staff.value, staff_pk, "update")
    _ensure_entity(request, EntityType.staff.value, staff_pk)
    records: RecordStore = request.app.state.record_store
    accounts: AccountStore = request.app.state.account_store
    files: FileStore = request.app.state.files

    previous = records.list_attachments(EntityType.staff.value, staff_pk, kind="photo")
    attachment = _store_upload(
        request, photo, EntityType.staff.value, staff_pk, "photo", account, is_primary=True
    )
    for old in previous:
        records.delete_attachment(old.id)
        files.delete(old.path)
    accounts.update_account(staff_pk, modified_by=account.id, photo_url=attachment_url(attachment))
    logger.info("Profile photo replaced for account %s (%d old removed)", staff_pk, len(previous))
    return Envelope[AttachmentOut](data=AttachmentOut.from_attachment(attachment), message="Photo uploaded.")


# ---------------------------------------------------------------------------
# Download / delete
# ---------------------------------------------------------------------------


def _get_attachment_or_404(request: Request, entity_type: EntityType, entity_id: int, file_id: int) -> Attachment:
    records: RecordStore = request.app.state.record_store
    attachment = records.get_attachment(file_id)
    if attachment is None or attachment.entity_type != entity_type.value or attachment.entity_id != entity_id:
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "File not found."})
    return attachment


@router.get("/uploads/{entity_type}/{entity_id}/files/{file_id}", response_class=FileResponse)
def download_file(
    request: Request,
    entity_type: EntityType,
    entity_id: int,
    file_id: int,
    account: Account = Depends(get_current_account),
) -> FileResponse:
    _authorize_entity(account, entity_type.value, entity_id, "read")
    attachment = _get_attachment_or_404(request, entity_type, entity_id, file_id)
    files: FileStore = request.app.state.files
    path = files.resolve(attachment.path)
    if not path.is_file():
        logger.warning("Attachment %s has no file on disk: %s", attachment.id, attachment.path)
        raise HTTPException(status_code=404, detail={"code": "not_found", "message": "File not found."})
    return FileResponse(
        path, media_type=attachment.content_type, filename=attachment.original_name or attachment.filename
    )


@router.delete("/uploads/{entity_type}/{entity_id}/files/{file_id}", response_model=MessageResponse)
def delete_file(
    request: Request,
    entity_type: EntityType,
    entity_id: int,
    file_id: int,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    """Remove the attachment row and its file. A deleted staff photo also clears photo_url."""
    _authorize_entity(account, entity_type.value, entity_id, "update")
    attachment = _get_attachment_or_404(request, entity_type, entity_id, file_id)
    records: RecordStore = request.app.state.record_store
    files: FileStore = request.app.state.files
    records.delete_attachment(attachment.id)
    files.delete(attachment.path)
    if entity_type is EntityType.staff and attachment.kind == "photo":
        accounts: AccountStore = request.app.state.account_store
        target = accounts.get_by_id(entity_id)
        if target is not None and target.photo_url == attachment_url(attachment):
            accounts.update_account(entity_id, modified_by=account.id, photo_url=None)
    logger.info("Attachment %s deleted from %s/%s by %s", file_id, entity_type.value, entity_id, account.employee_id)
    return MessageResponse(message="File deleted.")
