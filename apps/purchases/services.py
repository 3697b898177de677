"""
Request lifecycle and approval engine.

All mutations of a request flow through this module:
- status-changing writes are conditional updates scoped by id and the
  status observed under lock, so a lost race affects zero rows and is
  reported as StaleStateError instead of succeeding silently
- approval entries rely on the (request, role) unique constraint, so
  concurrent approvals with distinct roles are all recorded
- receipts are uploaded before any row is written
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.accounts.services import caller_name, resolve_member
from apps.core.exceptions import (
    DuplicateApprovalError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    StorageError,
    ValidationError,
    WorkflowError,
)
from apps.documents.services import receipt_storage

from . import workflow
from .models import Approval, Request, RequestItem

logger = logging.getLogger(__name__)


def get_active_request(request_id, for_update=False):
    """Fetch a non-deleted request or raise NotFoundError"""
    queryset = Request.objects.active()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=request_id)
    except (Request.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError('申請が見つかりません。')


def get_request_for_viewer(request_id, user):
    """
    Load a request the caller may look at: the owner, members of the same
    club and administrators.
    """
    member = resolve_member(user)
    purchase_request = get_active_request(request_id)
    if (
        purchase_request.user_id != member.pk
        and purchase_request.club_id != member.club_id
        and not member.is_administrator()
    ):
        raise ForbiddenError('この申請を閲覧する権限がありません。')
    return purchase_request


def _replace_items(purchase_request, rows):
    """Wholesale item replacement: delete everything, insert the current set"""
    purchase_request.items.all().delete()
    RequestItem.objects.bulk_create([
        RequestItem(
            request=purchase_request,
            item_name=row['item_name'],
            quantity=row['quantity'],
            unit_price=row['unit_price'],
            amount=row['amount'],
            sort_order=index,
        )
        for index, row in enumerate(rows)
    ])


def create_request(user, details, items, receipt=None):
    """
    Submit a new purchase request.

    Returns:
        Request: persisted request in status ``submitted`` at revision 1

    Raises:
        AuthError: caller is not a known, non-deleted user
        ForbiddenError: caller has not completed club setup
        ValidationError: missing required field, bad items or receipt
        StorageError: receipt upload or database write failed
    """
    member = resolve_member(user)
    if not member.has_completed_setup():
        raise ForbiddenError('ユーザー情報が見つかりません。初期設定を完了してください。')

    cleaned = workflow.clean_details(details)
    rows = workflow.require_items(items)
    total_amount = workflow.compute_total(rows)

    receipt_path = None
    if receipt:
        receipt_path = receipt_storage.save(member.club_id, receipt)

    try:
        with transaction.atomic():
            purchase_request = Request.objects.create(
                club_id=member.club_id,
                user=member,
                total_amount=total_amount,
                status=Request.Status.SUBMITTED,
                revision_number=1,
                rejection_reason=None,
                receipt_path=receipt_path,
                **cleaned
            )
            _replace_items(purchase_request, rows)
    except DatabaseError:
        logger.error(f"create_request failed for user {member.pk}", exc_info=True)
        receipt_storage.delete(receipt_path)
        raise StorageError('create_request')

    logger.info(
        f"Request {purchase_request.pk} submitted by {member.username}: "
        f"{len(rows)} items, total {total_amount}"
    )
    return purchase_request


def approve_as_role(request_id, user, role, approver_name=None):
    """
    Record one role's approval and close the request once all five signed.

    Any authenticated user may sign as any of the fixed roles; the approver
    name is free text and falls back to the caller's display name.

    Raises:
        AuthError, NotFoundError, ValidationError,
        InvalidTransitionError: the request is currently rejected
        DuplicateApprovalError: the role already signed
        StaleStateError: the status changed under us
        StorageError: database failure
    """
    member = resolve_member(user)

    try:
        with transaction.atomic():
            purchase_request = get_active_request(request_id, for_update=True)

            if purchase_request.status == Request.Status.REJECTED:
                logger.warning(f"Approval attempt on rejected request {request_id} by {member.username}")
                raise InvalidTransitionError('差し戻し中の申請は承認できません。再提出後に承認してください。')

            workflow.validate_role(role)
            if purchase_request.approvals.filter(role=role).exists():
                raise DuplicateApprovalError(role)

            name = (approver_name or '').strip() or caller_name(member)
            if not name:
                raise ValidationError('承認者名を入力してください。')

            try:
                with transaction.atomic():
                    Approval.objects.create(
                        request=purchase_request,
                        role=role,
                        name=name,
                        approved_at=timezone.now(),
                        approved_by=member,
                    )
            except IntegrityError:
                logger.warning(f"Concurrent approval for role {role} on request {request_id}")
                raise DuplicateApprovalError(role)

            observed_status = purchase_request.status
            if (
                workflow.is_fully_approved(purchase_request.approved_roles())
                and observed_status in Request.REJECTABLE_STATUSES
            ):
                updated = Request.objects.filter(
                    pk=purchase_request.pk,
                    status=observed_status
                ).update(status=Request.Status.APPROVED, updated_at=timezone.now())
                if not updated:
                    raise StaleStateError()
                purchase_request.status = Request.Status.APPROVED
                logger.info(f"Request {request_id} fully approved")
    except DatabaseError:
        logger.error(f"approve_as_role failed for request {request_id}", exc_info=True)
        raise StorageError('approve_as_role', request_id)

    logger.info(f"Request {request_id} approved as {role} by {name}")
    return purchase_request


def reject_with_reason(request_id, user, reason, rejector_name=None):
    """
    Return a request to its owner with a reason.

    Earlier approvals stay on the request for audit.
    """
    member = resolve_member(user)

    trimmed = (reason or '').strip()
    if not trimmed:
        raise ValidationError('差し戻し理由を入力してください。')
    name = (rejector_name or '').strip() or caller_name(member)

    try:
        with transaction.atomic():
            purchase_request = get_active_request(request_id, for_update=True)

            observed_status = purchase_request.status
            if observed_status not in Request.REJECTABLE_STATUSES:
                logger.warning(
                    f"Rejection attempt on request {request_id} in status {observed_status} by {member.username}"
                )
                raise InvalidTransitionError(
                    f'{purchase_request.get_status_display()}の申請は差し戻しできません。'
                )

            rejection_reason = workflow.format_rejection_reason(name, trimmed)
            updated = Request.objects.filter(
                pk=purchase_request.pk,
                status=observed_status
            ).update(
                status=Request.Status.REJECTED,
                rejection_reason=rejection_reason,
                updated_at=timezone.now()
            )
            if not updated:
                raise StaleStateError()
    except DatabaseError:
        logger.error(f"reject_with_reason failed for request {request_id}", exc_info=True)
        raise StorageError('reject_with_reason', request_id)

    purchase_request.status = Request.Status.REJECTED
    purchase_request.rejection_reason = rejection_reason
    logger.info(f"Request {request_id} rejected by {name}")
    return purchase_request


def resubmit_request(request_id, user, details=None, items=None, receipt=None):
    """
    Edit a rejected request and send it back into the approval workflow.

    Fields missing from ``details`` keep their values; ``items`` replaces the
    whole item set when given. Without a new receipt the stored one is kept.
    The revision number goes up by exactly one and the approval record and
    rejection reason are cleared.
    """
    member = resolve_member(user)
    purchase_request = get_active_request(request_id)

    if purchase_request.user_id != member.pk:
        raise ForbiddenError('修正対象の申請が見つからないか、編集権限がありません。')
    if not purchase_request.can_be_resubmitted:
        raise InvalidTransitionError('差し戻し（rejected）の申請のみ編集・再提出できます。')

    cleaned = workflow.clean_details(details, partial=True)
    rows = workflow.require_items(items) if items is not None else None

    new_receipt_path = None
    if receipt:
        new_receipt_path = receipt_storage.save(purchase_request.club_id, receipt)

    fields = dict(cleaned)
    fields.update(
        status=Request.Status.SUBMITTED,
        revision_number=F('revision_number') + 1,
        rejection_reason=None,
        updated_at=timezone.now(),
    )
    if rows is not None:
        fields['total_amount'] = workflow.compute_total(rows)
    if new_receipt_path:
        fields['receipt_path'] = new_receipt_path

    try:
        with transaction.atomic():
            updated = Request.objects.active().filter(
                pk=purchase_request.pk,
                user=member,
                status=Request.Status.REJECTED,
                revision_number=purchase_request.revision_number
            ).update(**fields)
            if not updated:
                raise StaleStateError()

            purchase_request.approvals.all().delete()
            if rows is not None:
                _replace_items(purchase_request, rows)
    except DatabaseError:
        logger.error(f"resubmit_request failed for request {request_id}", exc_info=True)
        receipt_storage.delete(new_receipt_path)
        raise StorageError('resubmit_request', request_id)
    except WorkflowError:
        receipt_storage.delete(new_receipt_path)
        raise

    purchase_request.refresh_from_db()
    logger.info(
        f"Request {request_id} resubmitted by {member.username} as revision {purchase_request.revision_number}"
    )
    return purchase_request


def mark_paid(request_ids):
    """External payment marking: approved -> paid, nothing else"""
    updated = Request.objects.active().filter(
        pk__in=request_ids,
        status=Request.Status.APPROVED
    ).update(status=Request.Status.PAID, updated_at=timezone.now())
    logger.info(f"{updated} requests marked as paid")
    return updated


def soft_delete_requests(request_ids):
    now = timezone.now()
    updated = Request.objects.active().filter(pk__in=request_ids).update(deleted_at=now, updated_at=now)
    logger.info(f"{updated} requests soft-deleted")
    return updated
