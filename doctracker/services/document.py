from __future__ import annotations

import mimetypes
from collections.abc import Sequence
from pathlib import PurePath
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, func, select

from doctracker.core.config import Settings, settings as default_settings
from doctracker.core.logging_setup import logger
from doctracker.models.base import utcnow
from doctracker.models.document import (
    ApprovalState,
    Document,
    DocumentActivity,
    DocumentComment,
    DocumentSignatory,
    DocumentStatus,
)
from doctracker.models.notification import Notification
from doctracker.models.user import User
from doctracker.schemas.document import DocumentCreate, SignatoryUpdate
from doctracker.services.fanout import NotificationFanout
from doctracker.services.storage import StorageBackend, get_storage


class DocumentValidationError(ValueError):
    """Rejected input; raised before anything is written."""


class DocumentNotFoundError(LookupError):
    """Missing row, or a row the caller is not allowed to touch."""


def signature_progress(signatories: Sequence[DocumentSignatory]) -> int:
    """Percentage of signed signatories, rounded half up; 0 without signatories."""
    total = len(signatories)
    if not total:
        return 0
    signed = sum(1 for signatory in signatories if signatory.is_signed)
    return (200 * signed + total) // (2 * total)


def compute_status(document: Document, signatories: Sequence[DocumentSignatory]) -> DocumentStatus:
    if document.approval == ApprovalState.REJECTED:
        return DocumentStatus.REJECTED
    signed = sum(1 for signatory in signatories if signatory.is_signed)
    if signatories and signed == len(signatories):
        return DocumentStatus.COMPLETED
    if signed:
        return DocumentStatus.IN_PROGRESS
    return DocumentStatus.PENDING


class DocumentService:
    def __init__(
        self,
        session: Session,
        *,
        storage: StorageBackend | None = None,
        config: Settings | None = None,
    ) -> None:
        self.session = session
        self.config = config or default_settings
        self._storage = storage
        self.fanout = NotificationFanout(session)

    @property
    def storage(self) -> StorageBackend:
        if self._storage is None:
            self._storage = get_storage(self.config)
        return self._storage

    @property
    def notifications(self) -> list[Notification]:
        """Notifications created by the mutations of this service instance."""
        return self.fanout.created

    # ======================================================================
    # Validation
    # ======================================================================

    def validate_upload(self, file_name: str | None, content_type: str | None, size: int) -> None:
        if not file_name:
            raise DocumentValidationError("Please upload a document file")
        if size > self.config.max_upload_bytes:
            limit_mb = self.config.max_upload_bytes // (1024 * 1024)
            raise DocumentValidationError(f"File size must be less than {limit_mb}MB")
        resolved_type = content_type or mimetypes.guess_type(file_name)[0]
        if resolved_type not in self.config.allowed_upload_types:
            raise DocumentValidationError("Only PDF, DOC, DOCX, PNG, and JPG files are allowed")

    # ======================================================================
    # Queries
    # ======================================================================

    def get_document(self, document_id: UUID) -> Document:
        document = self.session.get(Document, document_id)
        if not document:
            raise DocumentNotFoundError("Document not found")
        return document

    def list_documents(self, status: DocumentStatus | None = None) -> list[Document]:
        query = select(Document).order_by(Document.created_at.desc())
        if status:
            query = query.where(Document.status == status)
        return list(self.session.exec(query).all())

    def count_by_status(self) -> dict[str, int]:
        rows = self.session.exec(select(Document.status, func.count()).group_by(Document.status)).all()
        counts = {status.value: 0 for status in DocumentStatus}
        for status, total in rows:
            key = status.value if isinstance(status, DocumentStatus) else str(status)
            counts[key] = int(total or 0)
        counts["total"] = sum(counts.values())
        return counts

    def list_comments(self, document: Document) -> list[DocumentComment]:
        return list(
            self.session.exec(
                select(DocumentComment)
                .where(DocumentComment.document_id == document.id)
                .order_by(DocumentComment.created_at.desc())
            ).all()
        )

    def list_activity(self, document: Document) -> list[DocumentActivity]:
        return list(
            self.session.exec(
                select(DocumentActivity)
                .where(DocumentActivity.document_id == document.id)
                .order_by(DocumentActivity.created_at.desc())
            ).all()
        )

    # ======================================================================
    # Mutations
    # ======================================================================

    def create_document(
        self,
        creator: User,
        payload: DocumentCreate,
        *,
        file_name: str | None,
        content_type: str | None,
        data: bytes,
    ) -> Document:
        name = (payload.name or "").strip()
        if not name:
            raise DocumentValidationError("Document name is required")
        signatories = [item for item in payload.signatories if item.name and item.name.strip()]
        if not signatories:
            raise DocumentValidationError("At least one signatory is required")
        self.validate_upload(file_name, content_type, len(data))

        extension = PurePath(file_name or "").suffix.lstrip(".").lower() or "bin"
        stored_name = f"{int(utcnow().timestamp() * 1000)}.{extension}"
        storage_path = self.storage.save_bytes(
            root=str(creator.id),
            name=stored_name,
            data=data,
            content_type=content_type,
        )

        try:
            document = Document(
                name=name,
                description=(payload.description or "").strip() or None,
                file_url=self.storage.public_url(storage_path),
                file_name=file_name,
                storage_path=storage_path,
                created_by_id=creator.id,
                requires_admin_approval=payload.requires_admin_approval,
                status=DocumentStatus.PENDING,
            )
            self.session.add(document)
            self.session.flush()

            for index, item in enumerate(signatories):
                self.session.add(
                    DocumentSignatory(
                        document_id=document.id,
                        name=item.name.strip(),
                        position=item.position,
                        email=str(item.email) if item.email else None,
                        phone=item.phone,
                        order_index=index,
                    )
                )
            self._record_activity(document, creator, "created", "Document tracker created")
            self.session.flush()

            self.fanout.document_created(document, creator)
            self.session.commit()
        except Exception:
            self.session.rollback()
            self._remove_artifact(storage_path)
            raise

        self.session.refresh(document)
        logger.info("Document %s created by %s", document.id, creator.email)
        return document

    def delete_document(self, actor: User, document_id: UUID) -> None:
        document = self._get_for_update(actor, document_id)
        storage_path = document.storage_path

        try:
            self.fanout.document_deleted(document, actor)
            self.session.exec(
                update(Notification)
                .where(Notification.document_id == document.id)
                .values(document_id=None)
            )
            self.session.delete(document)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Document %s deleted by %s", document_id, actor.email)
        self._remove_artifact(storage_path)

    def set_approval(self, actor: User, document_id: UUID, decision: ApprovalState) -> Document:
        if not actor.is_admin:
            raise PermissionError("Only admins can approve documents")
        document = self.get_document(document_id)
        previous = document.approval
        if decision == previous:
            return document

        try:
            document.approval = decision
            if decision == ApprovalState.UNREVIEWED:
                document.approved_by_id = None
                document.approved_at = None
            else:
                document.approved_by_id = actor.id
                document.approved_at = utcnow()
            document.status = compute_status(document, document.signatories)
            document.updated_at = utcnow()
            self.session.add(document)

            if decision == ApprovalState.APPROVED:
                self._record_activity(document, actor, "admin_approved", "Document approved by admin")
            elif decision == ApprovalState.REJECTED:
                self._record_activity(document, actor, "admin_rejected", "Document rejected by admin")
            else:
                self._record_activity(document, actor, "admin_review_reset", "Admin review reset")
            self.session.flush()

            self.fanout.approval_changed(document, previous, actor)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(document)
        return document

    def update_signatory(
        self,
        actor: User,
        document_id: UUID,
        signatory_id: UUID,
        payload: SignatoryUpdate,
    ) -> DocumentSignatory:
        document = self._get_for_update(actor, document_id)
        signatory = self.session.get(DocumentSignatory, signatory_id)
        if not signatory or signatory.document_id != document.id:
            raise DocumentNotFoundError("Signatory not found")
        if payload.is_signed and not signatory.is_signed and document.is_locked:
            raise DocumentValidationError("Document is awaiting admin approval")

        previous_signed = signatory.is_signed
        previous_signed_at = signatory.signed_at

        try:
            if payload.is_signed and not previous_signed:
                signatory.signed_at = utcnow()
            elif not payload.is_signed:
                signatory.signed_at = None
            signatory.is_signed = payload.is_signed
            if payload.notes is not None:
                signatory.notes = payload.notes
            signatory.updated_at = utcnow()
            self.session.add(signatory)
            self.session.flush()

            document.status = compute_status(document, document.signatories)
            document.updated_at = utcnow()
            self.session.add(document)

            if signatory.is_signed != previous_signed:
                self._record_activity(
                    document,
                    actor,
                    "signature_added" if signatory.is_signed else "signature_removed",
                    f"Signatory {'signed' if signatory.is_signed else 'unsigned'} the document",
                    details={"signatory_id": str(signatory.id), "signatory_name": signatory.name},
                )
            self.session.flush()

            self.fanout.signature_changed(
                signatory,
                document,
                previous_signed=previous_signed,
                previous_signed_at=previous_signed_at,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(signatory)
        return signatory

    def add_comment(self, author: User, document_id: UUID, text: str) -> DocumentComment:
        cleaned = (text or "").strip()
        if not cleaned:
            raise DocumentValidationError("Comment cannot be empty")
        document = self.get_document(document_id)

        try:
            comment = DocumentComment(document_id=document.id, user_id=author.id, comment=cleaned)
            self.session.add(comment)
            self._record_activity(document, author, "comment_added", "Added a comment")
            self.session.flush()

            self.fanout.comment_added(comment, document, author)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(comment)
        return comment

    def delete_comment(self, actor: User, document_id: UUID, comment_id: UUID) -> None:
        comment = self.session.get(DocumentComment, comment_id)
        if not comment or comment.document_id != document_id:
            raise DocumentNotFoundError("Comment not found")
        if comment.user_id != actor.id and not actor.is_admin:
            raise DocumentNotFoundError("Comment not found")
        self.session.delete(comment)
        self.session.commit()

    # ======================================================================
    # Helpers
    # ======================================================================

    def _get_for_update(self, actor: User, document_id: UUID) -> Document:
        document = self.get_document(document_id)
        # row-level rule: creator or admin; a refusal looks like a missing row
        if document.created_by_id != actor.id and not actor.is_admin:
            raise DocumentNotFoundError("Document not found")
        return document

    def _record_activity(
        self,
        document: Document,
        actor: User | None,
        action: str,
        description: str,
        details: dict | None = None,
    ) -> DocumentActivity:
        entry = DocumentActivity(
            document_id=document.id,
            user_id=actor.id if actor else None,
            action=action,
            description=description,
            details=details,
        )
        self.session.add(entry)
        return entry

    def _remove_artifact(self, storage_path: str | None) -> None:
        if not storage_path:
            return
        try:
            self.storage.delete(storage_path)
        except Exception as exc:  # best effort, the row is already gone
            logger.warning("Could not remove stored file %s: %s", storage_path, exc)
