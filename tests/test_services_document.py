from types import SimpleNamespace

import pytest
from sqlmodel import select

from doctracker.models.document import ApprovalState, Document, DocumentActivity, DocumentStatus
from doctracker.models.notification import Notification, NotificationType
from doctracker.models.user import UserRole
from doctracker.schemas.document import DocumentCreate, SignatoryCreate, SignatoryUpdate
from doctracker.services.document import (
    DocumentNotFoundError,
    DocumentService,
    DocumentValidationError,
    compute_status,
    signature_progress,
)
from doctracker.services.fanout import NotificationFanout

PDF = b"%PDF-1.4 budget"


def _payload(name="Budget Request", signatories=("Treasurer",), requires_admin_approval=False):
    return DocumentCreate(
        name=name,
        requires_admin_approval=requires_admin_approval,
        signatories=[SignatoryCreate(name=item) for item in signatories],
    )


def _create(session, storage, creator, **kwargs):
    service = DocumentService(session, storage=storage)
    document = service.create_document(
        creator,
        _payload(**kwargs),
        file_name="budget.pdf",
        content_type="application/pdf",
        data=PDF,
    )
    return service, document


def _recipients(notifications):
    return sorted(str(item.recipient_id) for item in notifications)


def test_signature_progress_rounds_half_up():
    def signed(*flags):
        return [SimpleNamespace(is_signed=flag) for flag in flags]

    assert signature_progress([]) == 0
    assert signature_progress(signed(True, False, False)) == 33
    assert signature_progress(signed(True, True, False)) == 67
    assert signature_progress(signed(True, False)) == 50
    assert signature_progress(signed(True, *[False] * 7)) == 13
    assert signature_progress(signed(True, True)) == 100


def test_compute_status_follows_signatures_and_rejection():
    document = SimpleNamespace(approval=ApprovalState.UNREVIEWED)
    assert compute_status(document, []) == DocumentStatus.PENDING
    assert compute_status(document, [SimpleNamespace(is_signed=False)]) == DocumentStatus.PENDING
    assert (
        compute_status(document, [SimpleNamespace(is_signed=True), SimpleNamespace(is_signed=False)])
        == DocumentStatus.IN_PROGRESS
    )
    assert compute_status(document, [SimpleNamespace(is_signed=True)]) == DocumentStatus.COMPLETED

    document.approval = ApprovalState.REJECTED
    assert compute_status(document, [SimpleNamespace(is_signed=True)]) == DocumentStatus.REJECTED


def test_create_document_notifies_everyone_but_the_creator(session, storage, make_user):
    alice = make_user(session, "Alice")
    bob = make_user(session, "Bob")
    carol = make_user(session, "Carol", UserRole.ADMIN)

    service, document = _create(session, storage, alice, signatories=("Treasurer", "President"))

    created = service.notifications
    assert _recipients(created) == sorted([str(bob.id), str(carol.id)])
    assert {item.type for item in created} == {NotificationType.DOCUMENT_CREATED}
    assert all(item.document_id == document.id for item in created)
    assert created[0].message == "Alice created a new document: Budget Request"
    assert [item.order_index for item in document.signatories] == [0, 1]
    assert document.file_url.startswith("http://testserver/files/")
    assert (storage.base_dir / document.storage_path).read_bytes() == PDF


def test_create_document_rejects_invalid_input(session, storage, make_user):
    alice = make_user(session, "Alice")
    service = DocumentService(session, storage=storage)

    with pytest.raises(DocumentValidationError, match="signatory"):
        service.create_document(
            alice,
            _payload(signatories=("  ",)),
            file_name="budget.pdf",
            content_type="application/pdf",
            data=PDF,
        )
    with pytest.raises(DocumentValidationError, match="Only PDF"):
        service.create_document(
            alice,
            _payload(),
            file_name="budget.exe",
            content_type="application/octet-stream",
            data=PDF,
        )
    with pytest.raises(DocumentValidationError, match="less than 10MB"):
        service.create_document(
            alice,
            _payload(),
            file_name="budget.pdf",
            content_type="application/pdf",
            data=b"0" * (10 * 1024 * 1024 + 1),
        )
    with pytest.raises(DocumentValidationError, match="upload a document"):
        service.create_document(alice, _payload(), file_name=None, content_type=None, data=b"")

    assert session.exec(select(Document)).all() == []
    assert session.exec(select(Notification)).all() == []


def test_failing_fanout_aborts_the_mutation(session, storage, make_user, monkeypatch):
    alice = make_user(session, "Alice")
    make_user(session, "Bob")

    def boom(self, document, creator):
        raise RuntimeError("notification insert failed")

    monkeypatch.setattr(NotificationFanout, "document_created", boom)

    with pytest.raises(RuntimeError):
        _create(session, storage, alice)

    assert session.exec(select(Document)).all() == []
    assert session.exec(select(Notification)).all() == []
    assert not any(path.is_file() for path in storage.base_dir.rglob("*"))


def test_approval_change_reaches_creator_admins_and_commenters_once(session, storage, make_user):
    alice = make_user(session, "Alice")
    bob = make_user(session, "Bob")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    dave = make_user(session, "Dave", UserRole.ADMIN)
    make_user(session, "Eve")

    _, document = _create(session, storage, alice, requires_admin_approval=True)
    commenting = DocumentService(session, storage=storage)
    commenting.add_comment(bob, document.id, "Looks fine")
    commenting.add_comment(bob, document.id, "Second thought")
    commenting.add_comment(alice, document.id, "Thanks")
    commenting.add_comment(carol, document.id, "Reviewing")

    approving = DocumentService(session, storage=storage)
    updated = approving.set_approval(carol, document.id, ApprovalState.APPROVED)

    notifications = approving.notifications
    assert _recipients(notifications) == sorted([str(alice.id), str(bob.id), str(dave.id)])
    assert {item.type for item in notifications} == {NotificationType.STATUS_UPDATED}
    assert notifications[0].message == 'Document "Budget Request" has been approved by Carol'
    assert updated.approved_by_id == carol.id
    assert not updated.is_locked


def test_setting_the_same_approval_creates_no_notifications(session, storage, make_user):
    alice = make_user(session, "Alice")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    _, document = _create(session, storage, alice)

    service = DocumentService(session, storage=storage)
    service.set_approval(carol, document.id, ApprovalState.UNREVIEWED)

    assert service.notifications == []


def test_repeating_a_decision_leaves_the_document_untouched(session, storage, make_user):
    alice = make_user(session, "Alice")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    dave = make_user(session, "Dave", UserRole.ADMIN)
    _, document = _create(session, storage, alice, requires_admin_approval=True)

    DocumentService(session, storage=storage).set_approval(carol, document.id, ApprovalState.APPROVED)
    first_approved_at = document.approved_at

    repeated = DocumentService(session, storage=storage)
    updated = repeated.set_approval(dave, document.id, ApprovalState.APPROVED)

    assert repeated.notifications == []
    assert updated.approved_by_id == carol.id
    assert updated.approved_at == first_approved_at
    actions = session.exec(
        select(DocumentActivity.action).where(DocumentActivity.document_id == document.id)
    ).all()
    assert actions.count("admin_approved") == 1


def test_only_admins_can_change_approval(session, storage, make_user):
    alice = make_user(session, "Alice")
    _, document = _create(session, storage, alice)

    with pytest.raises(PermissionError):
        DocumentService(session, storage=storage).set_approval(alice, document.id, ApprovalState.APPROVED)


def test_rejection_marks_document_rejected(session, storage, make_user):
    alice = make_user(session, "Alice")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    _, document = _create(session, storage, alice, requires_admin_approval=True)

    updated = DocumentService(session, storage=storage).set_approval(carol, document.id, ApprovalState.REJECTED)

    assert updated.status == DocumentStatus.REJECTED
    assert updated.is_locked


def test_signature_change_notifies_the_acting_creator_too(session, storage, make_user):
    alice = make_user(session, "Alice")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    _, document = _create(session, storage, alice, signatories=("Treasurer", "President"))
    signatory = document.signatories[0]

    service = DocumentService(session, storage=storage)
    updated = service.update_signatory(alice, document.id, signatory.id, SignatoryUpdate(is_signed=True))

    assert updated.is_signed and updated.signed_at is not None
    assert _recipients(service.notifications) == sorted([str(alice.id), str(carol.id)])
    assert service.notifications[0].type == NotificationType.SIGNATURE_ADDED
    assert service.notifications[0].message == 'Treasurer has signed the document "Budget Request"'
    session.refresh(document)
    assert document.status == DocumentStatus.IN_PROGRESS


def test_resigning_keeps_the_original_signature_time(session, storage, make_user):
    alice = make_user(session, "Alice")
    _, document = _create(session, storage, alice)
    signatory = document.signatories[0]

    DocumentService(session, storage=storage).update_signatory(
        alice, document.id, signatory.id, SignatoryUpdate(is_signed=True)
    )
    first_signed_at = signatory.signed_at

    again = DocumentService(session, storage=storage)
    again.update_signatory(alice, document.id, signatory.id, SignatoryUpdate(is_signed=True, notes="ok"))

    assert signatory.signed_at == first_signed_at
    assert again.notifications == []


def test_locked_document_cannot_be_signed(session, storage, make_user):
    alice = make_user(session, "Alice")
    _, document = _create(session, storage, alice, requires_admin_approval=True)
    signatory = document.signatories[0]

    service = DocumentService(session, storage=storage)
    with pytest.raises(DocumentValidationError, match="awaiting admin approval"):
        service.update_signatory(alice, document.id, signatory.id, SignatoryUpdate(is_signed=True))
    assert service.notifications == []


def test_members_cannot_touch_documents_of_others(session, storage, make_user):
    alice = make_user(session, "Alice")
    bob = make_user(session, "Bob")
    _, document = _create(session, storage, alice)

    service = DocumentService(session, storage=storage)
    with pytest.raises(DocumentNotFoundError):
        service.update_signatory(bob, document.id, document.signatories[0].id, SignatoryUpdate(is_signed=True))
    with pytest.raises(DocumentNotFoundError):
        service.delete_document(bob, document.id)


def test_comment_notifies_audience_without_the_author(session, storage, make_user):
    alice = make_user(session, "Alice")
    bob = make_user(session, "Bob")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    _, document = _create(session, storage, alice)

    service = DocumentService(session, storage=storage)
    service.add_comment(bob, document.id, "Please attach the invoice")

    assert _recipients(service.notifications) == sorted([str(alice.id), str(carol.id)])
    assert service.notifications[0].type == NotificationType.COMMENT_ADDED

    with pytest.raises(DocumentValidationError):
        service.add_comment(bob, document.id, "   ")


def test_deleting_a_document_keeps_notifications(session, storage, make_user):
    alice = make_user(session, "Alice")
    bob = make_user(session, "Bob")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    _, document = _create(session, storage, alice)
    document_id = document.id
    stored = storage.base_dir / document.storage_path
    DocumentService(session, storage=storage).add_comment(bob, document_id, "Noted")

    service = DocumentService(session, storage=storage)
    service.delete_document(alice, document_id)

    deleted = service.notifications
    assert _recipients(deleted) == sorted([str(bob.id), str(carol.id)])
    assert all(item.document_id is None for item in deleted)
    assert all(item.payload["document_id"] == str(document_id) for item in deleted)

    remaining = session.exec(select(Notification)).all()
    assert remaining
    assert all(item.document_id is None for item in remaining)
    assert session.get(Document, document_id) is None
    assert not stored.exists()


def test_comment_deletion_is_limited_to_author_or_admin(session, storage, make_user):
    alice = make_user(session, "Alice")
    bob = make_user(session, "Bob")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    _, document = _create(session, storage, alice)
    service = DocumentService(session, storage=storage)
    first = service.add_comment(bob, document.id, "first")
    second = service.add_comment(bob, document.id, "second")

    with pytest.raises(DocumentNotFoundError):
        service.delete_comment(alice, document.id, first.id)
    service.delete_comment(bob, document.id, first.id)
    service.delete_comment(carol, document.id, second.id)

    assert service.list_comments(document) == []


def test_counts_and_filters_by_status(session, storage, make_user):
    alice = make_user(session, "Alice")
    _, first = _create(session, storage, alice, name="First")
    _create(session, storage, alice, name="Second")
    DocumentService(session, storage=storage).update_signatory(
        alice, first.id, first.signatories[0].id, SignatoryUpdate(is_signed=True)
    )

    service = DocumentService(session, storage=storage)
    counts = service.count_by_status()

    assert counts["total"] == 2
    assert counts["completed"] == 1
    assert counts["pending"] == 1
    assert [doc.name for doc in service.list_documents(DocumentStatus.COMPLETED)] == ["First"]


def test_budget_request_completes_only_after_every_signature(session, storage, make_user):
    alice = make_user(session, "Alice")
    carol = make_user(session, "Carol", UserRole.ADMIN)
    _, document = _create(
        session,
        storage,
        alice,
        signatories=("Treasurer", "President"),
        requires_admin_approval=True,
    )
    first, second = document.signatories

    DocumentService(session, storage=storage).set_approval(carol, document.id, ApprovalState.APPROVED)
    session.refresh(document)
    assert document.status == DocumentStatus.PENDING

    DocumentService(session, storage=storage).update_signatory(
        alice, document.id, first.id, SignatoryUpdate(is_signed=True)
    )
    session.refresh(document)
    assert document.status == DocumentStatus.IN_PROGRESS
    assert signature_progress(document.signatories) == 50

    DocumentService(session, storage=storage).update_signatory(
        carol, document.id, second.id, SignatoryUpdate(is_signed=True)
    )
    session.refresh(document)
    assert document.status == DocumentStatus.COMPLETED
    assert signature_progress(document.signatories) == 100
