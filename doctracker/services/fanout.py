"""Notification fan-out for document and signatory mutations.

Each handler runs inside the caller's session: rows are added and flushed but
never committed here, so a failure aborts the mutation that triggered it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlmodel import Session, select

from doctracker.core.logging_setup import logger
from doctracker.models.document import ApprovalState, Document, DocumentComment, DocumentSignatory
from doctracker.models.notification import Notification, NotificationType
from doctracker.models.user import User, UserRole

_APPROVAL_TEXT = {
    ApprovalState.APPROVED: "approved",
    ApprovalState.REJECTED: "rejected",
    ApprovalState.UNREVIEWED: "pending review",
}


class NotificationFanout:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.created: list[Notification] = []

    # ======================================================================
    # Audience functions
    # ======================================================================

    def notify_users(
        self,
        title: str,
        message: str,
        notification_type: NotificationType,
        *,
        document_id: UUID | None = None,
        data: dict[str, Any] | None = None,
        exclude_user_id: UUID | None = None,
    ) -> list[Notification]:
        """One notification for every user except ``exclude_user_id``."""
        query = select(User.id)
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        recipients = list(self.session.exec(query).all())
        return self._insert(recipients, title, message, notification_type, document_id, data)

    def notify_user(
        self,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: NotificationType,
        *,
        document_id: UUID | None = None,
        data: dict[str, Any] | None = None,
    ) -> Notification:
        return self._insert([user_id], title, message, notification_type, document_id, data)[0]

    def document_audience(self, document_id: UUID, *, creator_id: UUID | None = None) -> list[UUID]:
        """Creator, then admins, then commenters; without nulls or repeats."""
        if creator_id is None:
            creator_id = self.session.exec(
                select(Document.created_by_id).where(Document.id == document_id)
            ).first()
        admins = self.session.exec(select(User.id).where(User.role == UserRole.ADMIN.value)).all()
        commenters = self.session.exec(
            select(DocumentComment.user_id).where(DocumentComment.document_id == document_id).distinct()
        ).all()

        audience: list[UUID] = []
        seen: set[UUID] = set()
        for user_id in [creator_id, *admins, *commenters]:
            if user_id is None or user_id in seen:
                continue
            seen.add(user_id)
            audience.append(user_id)
        return audience

    def notify_document_users(
        self,
        title: str,
        message: str,
        notification_type: NotificationType,
        document_id: UUID,
        *,
        data: dict[str, Any] | None = None,
        exclude_user_id: UUID | None = None,
        creator_id: UUID | None = None,
        link_document: bool = True,
    ) -> list[Notification]:
        recipients = [
            user_id
            for user_id in self.document_audience(document_id, creator_id=creator_id)
            if user_id != exclude_user_id
        ]
        return self._insert(
            recipients,
            title,
            message,
            notification_type,
            document_id if link_document else None,
            data,
        )

    # ======================================================================
    # Mutation events
    # ======================================================================

    def document_created(self, document: Document, creator: User) -> list[Notification]:
        return self.notify_users(
            "New Document Created",
            f"{creator.full_name} created a new document: {document.name}",
            NotificationType.DOCUMENT_CREATED,
            document_id=document.id,
            data={"document_name": document.name, "creator": creator.full_name},
            exclude_user_id=creator.id,
        )

    def document_deleted(self, document: Document, actor: User) -> list[Notification]:
        # the row is about to disappear, so the id only travels in the payload
        return self.notify_document_users(
            "Document Deleted",
            f"{actor.full_name} deleted the document: {document.name}",
            NotificationType.DOCUMENT_DELETED,
            document.id,
            data={
                "document_id": str(document.id),
                "document_name": document.name,
                "deleter": actor.full_name,
            },
            exclude_user_id=actor.id,
            creator_id=document.created_by_id,
            link_document=False,
        )

    def approval_changed(
        self,
        document: Document,
        previous: ApprovalState,
        actor: User,
    ) -> list[Notification]:
        if document.approval == previous:
            return []
        status_text = _APPROVAL_TEXT[document.approval]
        return self.notify_document_users(
            "Document Status Updated",
            f'Document "{document.name}" has been {status_text} by {actor.full_name}',
            NotificationType.STATUS_UPDATED,
            document.id,
            data={
                "document_name": document.name,
                "status": status_text,
                "updater": actor.full_name,
                "approval": document.approval.value,
            },
            exclude_user_id=actor.id,
            creator_id=document.created_by_id,
        )

    def signature_changed(
        self,
        signatory: DocumentSignatory,
        document: Document,
        *,
        previous_signed: bool,
        previous_signed_at: datetime | None,
    ) -> list[Notification]:
        if signatory.is_signed == previous_signed and signatory.signed_at == previous_signed_at:
            return []
        status_text = "signed" if signatory.is_signed else "pending"
        # Signatories are often not application users, so nobody is excluded here.
        return self.notify_document_users(
            "Signature Update",
            f'{signatory.name} has {status_text} the document "{document.name}"',
            NotificationType.SIGNATURE_ADDED,
            document.id,
            data={
                "document_name": document.name,
                "signatory_name": signatory.name,
                "status": status_text,
                "position": signatory.position,
            },
            creator_id=document.created_by_id,
        )

    def comment_added(self, comment: DocumentComment, document: Document, author: User) -> list[Notification]:
        return self.notify_document_users(
            "New Comment",
            f'{author.full_name} commented on "{document.name}"',
            NotificationType.COMMENT_ADDED,
            document.id,
            data={
                "document_name": document.name,
                "author": author.full_name,
                "comment_id": str(comment.id),
            },
            exclude_user_id=author.id,
            creator_id=document.created_by_id,
        )

    def _insert(
        self,
        recipients: Iterable[UUID],
        title: str,
        message: str,
        notification_type: NotificationType,
        document_id: UUID | None,
        data: dict[str, Any] | None,
    ) -> list[Notification]:
        rows = [
            Notification(
                recipient_id=recipient_id,
                document_id=document_id,
                title=title,
                message=message,
                type=notification_type,
                payload=dict(data or {}),
            )
            for recipient_id in recipients
        ]
        if not rows:
            return rows
        self.session.add_all(rows)
        self.session.flush()
        self.created.extend(rows)
        logger.info(
            "Fan-out %s: %d notification(s) for document %s",
            notification_type.value,
            len(rows),
            document_id,
        )
        return rows
