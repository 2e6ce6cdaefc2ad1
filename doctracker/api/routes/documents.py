import json
from typing import Optional
from uuid import UUID

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from pydantic import ValidationError
from sqlmodel import Session

from doctracker.api.deps import get_current_user, get_db, get_dispatcher, get_storage_backend
from doctracker.models.document import Document, DocumentStatus
from doctracker.models.user import User
from doctracker.schemas.document import (
    ActivityRead,
    ApprovalRequest,
    CommentCreate,
    CommentRead,
    DocumentCounts,
    DocumentCreate,
    DocumentDetail,
    DocumentList,
    DocumentSummary,
    SignatoryRead,
    SignatoryUpdate,
)
from doctracker.services.dispatcher import NotificationDispatcher
from doctracker.services.document import (
    DocumentNotFoundError,
    DocumentService,
    DocumentValidationError,
    signature_progress,
)
from doctracker.services.storage import StorageBackend

router = APIRouter(prefix="/documents", tags=["documents"])


def _service(session: Session, storage: StorageBackend) -> DocumentService:
    return DocumentService(session, storage=storage)


def _to_summary(document: Document) -> DocumentSummary:
    signatories = list(document.signatories)
    base = DocumentSummary.model_validate(document, from_attributes=True)
    return base.model_copy(
        update={
            "creator_name": document.created_by.full_name if document.created_by else None,
            "signatory_count": len(signatories),
            "signed_count": sum(1 for item in signatories if item.is_signed),
            "progress": signature_progress(signatories),
        }
    )


def _to_comment(comment) -> CommentRead:  # type: ignore[no-untyped-def]
    base = CommentRead.model_validate(comment, from_attributes=True)
    return base.model_copy(update={"author_name": comment.user.full_name if comment.user else None})


def _to_detail(service: DocumentService, document: Document) -> DocumentDetail:
    summary = _to_summary(document)
    activity = [
        ActivityRead.model_validate(entry, from_attributes=True).model_copy(
            update={"user_name": entry.user.full_name if entry.user else None}
        )
        for entry in service.list_activity(document)
    ]
    return DocumentDetail(
        **summary.model_dump(),
        is_locked=document.is_locked,
        signatories=[SignatoryRead.model_validate(item, from_attributes=True) for item in document.signatories],
        comments=[_to_comment(item) for item in service.list_comments(document)],
        activity=activity,
    )


def _parse_signatories(raw: str) -> list:
    try:
        data = json.loads(raw or "[]")
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signatories list") from exc
    if not isinstance(data, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signatories list")
    return data


@router.get("", response_model=DocumentList)
def list_documents(
    status_filter: Optional[DocumentStatus] = Query(default=None, alias="status"),
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    current_user: User = Depends(get_current_user),
) -> DocumentList:
    service = _service(session, storage)
    items = [_to_summary(document) for document in service.list_documents(status_filter)]
    return DocumentList(items=items, counts=DocumentCounts(**service.count_by_status()))


@router.post("", response_model=DocumentDetail, status_code=status.HTTP_201_CREATED)
async def create_document(
    background_tasks: BackgroundTasks,
    name: str = Form(...),
    description: Optional[str] = Form(default=None),
    requires_admin_approval: bool = Form(default=False),
    signatories: str = Form(default="[]"),
    file: Optional[UploadFile] = File(default=None),
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(get_current_user),
) -> DocumentDetail:
    try:
        payload = DocumentCreate(
            name=name,
            description=description,
            requires_admin_approval=requires_admin_approval,
            signatories=_parse_signatories(signatories),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.errors()[0]["msg"]) from exc

    data = await file.read() if file else b""
    service = _service(session, storage)
    try:
        document = service.create_document(
            current_user,
            payload,
            file_name=file.filename if file else None,
            content_type=file.content_type if file else None,
            data=data,
        )
    except DocumentValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    dispatcher.dispatch(service.notifications, background_tasks)
    return _to_detail(service, document)


@router.get("/{document_id}", response_model=DocumentDetail)
def get_document(
    document_id: UUID,
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    current_user: User = Depends(get_current_user),
) -> DocumentDetail:
    service = _service(session, storage)
    try:
        document = service.get_document(document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found") from exc
    return _to_detail(service, document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: UUID,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(get_current_user),
) -> Response:
    service = _service(session, storage)
    try:
        service.delete_document(current_user, document_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found") from exc
    dispatcher.dispatch(service.notifications, background_tasks)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{document_id}/approval", response_model=DocumentDetail)
def set_approval(
    document_id: UUID,
    payload: ApprovalRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(get_current_user),
) -> DocumentDetail:
    service = _service(session, storage)
    try:
        document = service.set_approval(current_user, document_id, payload.decision)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found") from exc
    dispatcher.dispatch(service.notifications, background_tasks)
    return _to_detail(service, document)


@router.patch("/{document_id}/signatories/{signatory_id}", response_model=SignatoryRead)
def update_signatory(
    document_id: UUID,
    signatory_id: UUID,
    payload: SignatoryUpdate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(get_current_user),
) -> SignatoryRead:
    service = _service(session, storage)
    try:
        signatory = service.update_signatory(current_user, document_id, signatory_id, payload)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DocumentValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    dispatcher.dispatch(service.notifications, background_tasks)
    return SignatoryRead.model_validate(signatory, from_attributes=True)


@router.post("/{document_id}/comments", response_model=CommentRead, status_code=status.HTTP_201_CREATED)
def add_comment(
    document_id: UUID,
    payload: CommentCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(get_current_user),
) -> CommentRead:
    service = _service(session, storage)
    try:
        comment = service.add_comment(current_user, document_id, payload.comment)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found") from exc
    except DocumentValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    dispatcher.dispatch(service.notifications, background_tasks)
    return _to_comment(comment)


@router.delete("/{document_id}/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    document_id: UUID,
    comment_id: UUID,
    session: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    current_user: User = Depends(get_current_user),
) -> Response:
    service = _service(session, storage)
    try:
        service.delete_comment(current_user, document_id, comment_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found") from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
