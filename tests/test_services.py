"""
申請ライフサイクル・承認エンジンのテスト

- 作成（明細・合計・領収書）
- 役職ごとの承認と5役職そろった時点での承認済み
- 差し戻しと再提出（版数・承認記録のリセット）
- 競合・保存失敗時の挙動
- 支払済み・論理削除
"""
from decimal import Decimal
from unittest import mock
import uuid

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError, IntegrityError

from apps.core.exceptions import (
    AuthError,
    DuplicateApprovalError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StaleStateError,
    StorageError,
    ValidationError,
)
from apps.documents.services import receipt_storage
from apps.purchases import services
from apps.purchases.models import Approval, Request, RequestQuerySet, RequestItem
from apps.purchases.workflow import APPROVAL_ROLES


def pdf_receipt(name='領収書.pdf'):
    return SimpleUploadedFile(name, b'%PDF-1.4 test receipt', content_type='application/pdf')


@pytest.mark.django_db
class TestCreateRequest:
    """申請の作成"""

    def test_creates_submitted_request_with_items(self, member, request_details, ball_items):
        purchase_request = services.create_request(member, request_details, ball_items)

        purchase_request.refresh_from_db()
        assert purchase_request.status == Request.Status.SUBMITTED
        assert purchase_request.revision_number == 1
        assert purchase_request.total_amount == Decimal('1500')
        assert purchase_request.club_id == member.club_id
        assert purchase_request.user_id == member.pk
        assert purchase_request.approval_flow == []
        assert purchase_request.rejection_reason is None

        items = list(purchase_request.items.all())
        assert len(items) == 1
        assert items[0].item_name == 'ボール'
        assert items[0].amount == Decimal('1500')
        assert items[0].sort_order == 0

    def test_blank_rows_are_dropped(self, member, request_details):
        purchase_request = services.create_request(member, request_details, [
            {'item_name': '', 'quantity': 10, 'unit_price': 10000},
            {'item_name': 'ビブス', 'quantity': 2, 'unit_price': 800},
        ])
        assert purchase_request.items.count() == 1
        assert purchase_request.total_amount == Decimal('1600')

    def test_missing_required_field(self, member, request_details, ball_items):
        request_details['applicant_name'] = ''
        with pytest.raises(ValidationError) as exc_info:
            services.create_request(member, request_details, ball_items)
        assert exc_info.value.message == '記載日、職名、申請者氏名は必須です。'
        assert Request.objects.count() == 0

    def test_no_valid_items(self, member, request_details):
        with pytest.raises(ValidationError) as exc_info:
            services.create_request(member, request_details, [{'item_name': '  '}])
        assert exc_info.value.message == '少なくとも1つの明細を入力してください。'
        assert Request.objects.count() == 0

    def test_line_amount_beyond_column_writes_no_row(self, member, request_details):
        with pytest.raises(ValidationError) as exc_info:
            services.create_request(member, request_details, [
                {'item_name': '大型設備', 'quantity': '99999999', 'unit_price': '9999999999'},
            ])
        assert exc_info.value.message == '1行目の金額が大きすぎます。'
        assert Request.objects.count() == 0
        assert RequestItem.objects.count() == 0

    def test_total_beyond_column_writes_no_row(self, member, request_details):
        rows = [{'item_name': f'設備{n}', 'quantity': '1000', 'unit_price': '999999999'} for n in range(2)]

        with pytest.raises(ValidationError) as exc_info:
            services.create_request(member, request_details, rows)
        assert exc_info.value.message == '合計金額が大きすぎます。'
        assert Request.objects.count() == 0

    def test_fractional_amount_is_rounded_to_sen(self, member, request_details):
        purchase_request = services.create_request(member, request_details, [
            {'item_name': 'テープ', 'quantity': '0.33', 'unit_price': '0.33'},
        ])

        item = purchase_request.items.get()
        assert item.amount == Decimal('0.11')
        purchase_request.refresh_from_db()
        assert purchase_request.total_amount == Decimal('0.11')

    def test_user_without_club(self, new_user, request_details, ball_items):
        with pytest.raises(ForbiddenError):
            services.create_request(new_user, request_details, ball_items)

    def test_soft_deleted_user(self, member, request_details, ball_items):
        member.deleted_at = member.date_joined
        member.save()
        with pytest.raises(AuthError):
            services.create_request(member, request_details, ball_items)

    def test_receipt_is_stored_under_club(self, member, request_details, ball_items):
        purchase_request = services.create_request(member, request_details, ball_items, pdf_receipt())

        assert purchase_request.receipt_path.startswith(f'{member.club_id}/')
        assert purchase_request.receipt_path.endswith('_.pdf')
        assert receipt_storage.exists(purchase_request.receipt_path)

    def test_upload_failure_writes_no_row(self, member, request_details, ball_items):
        broken_storage = mock.MagicMock()
        broken_storage.save.side_effect = OSError('disk full')

        with mock.patch.object(receipt_storage, '_storage', broken_storage):
            with pytest.raises(StorageError):
                services.create_request(member, request_details, ball_items, pdf_receipt())

        assert Request.objects.count() == 0

    def test_database_failure_removes_uploaded_receipt(self, member, request_details, ball_items):
        with mock.patch.object(RequestItem.objects, 'bulk_create', side_effect=DatabaseError('boom')):
            with mock.patch.object(receipt_storage, 'delete', wraps=receipt_storage.delete) as delete:
                with pytest.raises(StorageError):
                    services.create_request(member, request_details, ball_items, pdf_receipt())

        stored_path = delete.call_args[0][0]
        assert stored_path is not None
        assert not receipt_storage.exists(stored_path)
        assert Request.objects.count() == 0


@pytest.mark.django_db
class TestApproveAsRole:
    """役職ごとの承認"""

    def test_single_approval_keeps_request_submitted(self, submitted_request, admin_user):
        result = services.approve_as_role(submitted_request.pk, admin_user, '教頭', '佐藤')

        assert result.status == Request.Status.SUBMITTED
        flow = result.approval_flow
        assert len(flow) == 1
        assert flow[0]['role'] == '教頭'
        assert flow[0]['name'] == '佐藤'
        assert flow[0]['approved_at']

    def test_all_five_roles_in_reverse_order_approve_request(self, submitted_request, admin_user, approve_all):
        result = approve_all(submitted_request, admin_user, tuple(reversed(APPROVAL_ROLES)))

        result.refresh_from_db()
        assert result.status == Request.Status.APPROVED
        assert [entry['role'] for entry in result.approval_flow] == list(reversed(APPROVAL_ROLES))

    def test_name_falls_back_to_display_name(self, submitted_request, admin_user):
        result = services.approve_as_role(submitted_request.pk, admin_user, '校長')
        assert result.approval_flow[0]['name'] == '管理 次郎'

    def test_duplicate_role(self, submitted_request, admin_user):
        services.approve_as_role(submitted_request.pk, admin_user, '校長', '佐藤')

        with pytest.raises(DuplicateApprovalError) as exc_info:
            services.approve_as_role(submitted_request.pk, admin_user, '校長', '高橋')

        assert exc_info.value.role == '校長'
        assert '校長' in exc_info.value.message
        assert Approval.objects.filter(request=submitted_request).count() == 1

    def test_concurrent_duplicate_hits_unique_constraint(self, submitted_request, admin_user):
        with mock.patch.object(Approval.objects, 'create', side_effect=IntegrityError('unique')):
            with pytest.raises(DuplicateApprovalError):
                services.approve_as_role(submitted_request.pk, admin_user, '校長', '佐藤')

    def test_distinct_roles_signed_concurrently_are_all_kept(self, submitted_request, admin_user, teammate):
        """他の役職の承認が読み取りと書き込みの間に確定しても、どれも失われない"""
        others = [role for role in APPROVAL_ROLES if role != '理事長']
        original_validate = services.workflow.validate_role

        def interleave(role):
            # Other approvers commit while this call holds the row
            for other in others:
                Approval.objects.create(
                    request=submitted_request,
                    role=other,
                    name=f'{other}担当',
                    approved_by=teammate,
                )
            return original_validate(role)

        with mock.patch.object(services.workflow, 'validate_role', side_effect=interleave):
            result = services.approve_as_role(submitted_request.pk, admin_user, '理事長', '伊藤')

        assert result.status == Request.Status.APPROVED
        submitted_request.refresh_from_db()
        assert submitted_request.status == Request.Status.APPROVED
        roles = [entry['role'] for entry in submitted_request.approval_flow]
        assert sorted(roles) == sorted(APPROVAL_ROLES)
        assert len(roles) == len(set(roles))

    def test_each_role_from_a_different_caller_is_recorded(
        self, submitted_request, member, teammate, admin_user, outsider
    ):
        callers = [member, teammate, admin_user, outsider, admin_user]
        for caller, role in zip(callers, APPROVAL_ROLES):
            services.approve_as_role(submitted_request.pk, caller, role)

        submitted_request.refresh_from_db()
        assert submitted_request.status == Request.Status.APPROVED
        assert Approval.objects.filter(request=submitted_request).count() == len(APPROVAL_ROLES)
        assert [entry['role'] for entry in submitted_request.approval_flow] == list(APPROVAL_ROLES)

    def test_invalid_role(self, submitted_request, admin_user):
        with pytest.raises(ValidationError):
            services.approve_as_role(submitted_request.pk, admin_user, '部長', '佐藤')

    def test_rejected_request_cannot_be_approved(self, submitted_request, admin_user):
        services.reject_with_reason(submitted_request.pk, admin_user, '見積書を添付してください', '校長')

        with pytest.raises(InvalidTransitionError):
            services.approve_as_role(submitted_request.pk, admin_user, '教頭', '佐藤')

    def test_unknown_request(self, admin_user):
        with pytest.raises(NotFoundError):
            services.approve_as_role(uuid.uuid4(), admin_user, '教頭', '佐藤')

    def test_malformed_id(self, admin_user):
        with pytest.raises(NotFoundError):
            services.approve_as_role('not-a-uuid', admin_user, '教頭', '佐藤')

    def test_approving_paid_request_does_not_change_status(self, submitted_request, admin_user):
        Request.objects.filter(pk=submitted_request.pk).update(status=Request.Status.PAID)

        result = services.approve_as_role(submitted_request.pk, admin_user, '教頭', '佐藤')
        assert result.status == Request.Status.PAID


@pytest.mark.django_db
class TestRejectWithReason:
    """差し戻し"""

    def test_reject_keeps_earlier_approvals(self, submitted_request, admin_user):
        services.approve_as_role(submitted_request.pk, admin_user, '部署担当者', '佐藤')

        result = services.reject_with_reason(submitted_request.pk, admin_user, '  金額を見直してください ', '校長')

        result.refresh_from_db()
        assert result.status == Request.Status.REJECTED
        assert result.rejection_reason == '校長: 金額を見直してください'
        assert [entry['role'] for entry in result.approval_flow] == ['部署担当者']

    def test_empty_reason(self, submitted_request, admin_user):
        with pytest.raises(ValidationError):
            services.reject_with_reason(submitted_request.pk, admin_user, '   ', '校長')

    def test_approved_request_cannot_be_rejected(self, submitted_request, admin_user, approve_all):
        approve_all(submitted_request, admin_user)

        with pytest.raises(InvalidTransitionError):
            services.reject_with_reason(submitted_request.pk, admin_user, '理由', '校長')

    def test_draft_can_be_rejected(self, submitted_request, admin_user):
        Request.objects.filter(pk=submitted_request.pk).update(status=Request.Status.DRAFT)

        result = services.reject_with_reason(submitted_request.pk, admin_user, '理由', '校長')
        assert result.status == Request.Status.REJECTED

    def test_lost_race_is_reported_as_stale(self, submitted_request, admin_user):
        with mock.patch.object(RequestQuerySet, 'update', return_value=0):
            with pytest.raises(StaleStateError):
                services.reject_with_reason(submitted_request.pk, admin_user, '理由', '校長')

        submitted_request.refresh_from_db()
        assert submitted_request.status == Request.Status.SUBMITTED


@pytest.mark.django_db
class TestResubmitRequest:
    """再提出"""

    @pytest.fixture
    def rejected_request(self, submitted_request, admin_user):
        services.approve_as_role(submitted_request.pk, admin_user, '部署担当者', '佐藤')
        services.approve_as_role(submitted_request.pk, admin_user, '教頭', '高橋')
        return services.reject_with_reason(submitted_request.pk, admin_user, '金額が過大', '校長')

    def test_resubmit_resets_workflow(self, rejected_request, member):
        result = services.resubmit_request(
            rejected_request.pk,
            member,
            {'reason': '数量を減らしました'},
            [{'item_name': 'ボール', 'quantity': 2, 'unit_price': 500}]
        )

        assert result.status == Request.Status.SUBMITTED
        assert result.revision_number == 2
        assert result.approval_flow == []
        assert result.rejection_reason is None
        assert result.total_amount == Decimal('1000')
        assert result.reason == '数量を減らしました'
        # 指定のない項目はそのまま
        assert result.job_title == '主将'
        assert result.items.count() == 1

    def test_revision_increases_by_one_each_time(self, rejected_request, member, admin_user):
        services.resubmit_request(rejected_request.pk, member)
        services.reject_with_reason(rejected_request.pk, admin_user, '再度確認', '校長')
        result = services.resubmit_request(rejected_request.pk, member)

        assert result.revision_number == 3

    def test_items_are_kept_when_not_supplied(self, rejected_request, member):
        result = services.resubmit_request(rejected_request.pk, member, {'category': '遠征費'})

        assert result.total_amount == Decimal('1500')
        assert result.items.get().item_name == 'ボール'
        assert result.category == '遠征費'

    def test_existing_receipt_is_reused(self, member, request_details, ball_items, admin_user):
        purchase_request = services.create_request(member, request_details, ball_items, pdf_receipt())
        services.reject_with_reason(purchase_request.pk, admin_user, '理由', '校長')

        result = services.resubmit_request(purchase_request.pk, member)
        assert result.receipt_path == purchase_request.receipt_path

    def test_new_receipt_replaces_path(self, rejected_request, member):
        result = services.resubmit_request(rejected_request.pk, member, receipt=pdf_receipt('new.pdf'))

        assert result.receipt_path.endswith('_new.pdf')
        assert receipt_storage.exists(result.receipt_path)

    def test_other_user_cannot_resubmit(self, rejected_request, teammate):
        with pytest.raises(ForbiddenError) as exc_info:
            services.resubmit_request(rejected_request.pk, teammate)
        assert exc_info.value.message == '修正対象の申請が見つからないか、編集権限がありません。'

    def test_only_rejected_requests(self, submitted_request, member):
        with pytest.raises(InvalidTransitionError):
            services.resubmit_request(submitted_request.pk, member)

    def test_empty_items_are_rejected(self, rejected_request, member):
        with pytest.raises(ValidationError):
            services.resubmit_request(rejected_request.pk, member, items=[{'item_name': ''}])

    def test_soft_deleted_request(self, rejected_request, member):
        services.soft_delete_requests([rejected_request.pk])
        with pytest.raises(NotFoundError):
            services.resubmit_request(rejected_request.pk, member)

    def test_stale_resubmit_removes_new_receipt(self, rejected_request, member):
        with mock.patch.object(RequestQuerySet, 'update', return_value=0):
            with mock.patch.object(receipt_storage, 'delete', wraps=receipt_storage.delete) as delete:
                with pytest.raises(StaleStateError):
                    services.resubmit_request(rejected_request.pk, member, receipt=pdf_receipt())

        assert not receipt_storage.exists(delete.call_args[0][0])
        rejected_request.refresh_from_db()
        assert rejected_request.revision_number == 1


@pytest.mark.django_db
class TestScenarios:
    """申請から承認・差し戻し・再提出までの一連の流れ"""

    def test_full_lifecycle(self, member, admin_user, request_details, ball_items, approve_all):
        purchase_request = services.create_request(member, request_details, ball_items)
        assert purchase_request.total_amount == Decimal('1500')

        services.approve_as_role(purchase_request.pk, admin_user, '部署担当者', '佐藤')
        services.reject_with_reason(purchase_request.pk, admin_user, '見積書を添付', '校長')

        resubmitted = services.resubmit_request(purchase_request.pk, member)
        assert resubmitted.revision_number == 2
        assert resubmitted.approval_flow == []

        result = approve_all(resubmitted, admin_user)
        result.refresh_from_db()
        assert result.status == Request.Status.APPROVED

        assert services.mark_paid([result.pk]) == 1
        result.refresh_from_db()
        assert result.status == Request.Status.PAID


@pytest.mark.django_db
class TestAdministrativeActions:
    """支払済み・論理削除"""

    def test_mark_paid_only_touches_approved(self, submitted_request, member, request_details, ball_items, admin_user, approve_all):
        approved = services.create_request(member, request_details, ball_items)
        approve_all(approved, admin_user)

        assert services.mark_paid([submitted_request.pk, approved.pk]) == 1

        submitted_request.refresh_from_db()
        approved.refresh_from_db()
        assert submitted_request.status == Request.Status.SUBMITTED
        assert approved.status == Request.Status.PAID

    def test_soft_delete_hides_request(self, submitted_request, admin_user):
        assert services.soft_delete_requests([submitted_request.pk]) == 1

        assert not Request.objects.active().filter(pk=submitted_request.pk).exists()
        with pytest.raises(NotFoundError):
            services.get_active_request(submitted_request.pk)

    def test_viewer_rules(self, submitted_request, teammate, outsider, admin_user):
        assert services.get_request_for_viewer(submitted_request.pk, teammate) == submitted_request
        assert services.get_request_for_viewer(submitted_request.pk, admin_user) == submitted_request
        with pytest.raises(ForbiddenError):
            services.get_request_for_viewer(submitted_request.pk, outsider)
