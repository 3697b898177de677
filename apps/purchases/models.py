from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
import uuid

from .workflow import APPROVAL_ROLES, line_amount


class RequestQuerySet(models.QuerySet):

    def active(self):
        return self.filter(deleted_at__isnull=True)

    def spent(self):
        """Requests that count against a club budget"""
        return self.active().filter(status__in=Request.SPENT_STATUSES)


class Request(models.Model):
    """
    Club purchase request routed through the five-role approval workflow
    """

    class Status(models.TextChoices):
        DRAFT = 'draft', '下書き'
        SUBMITTED = 'submitted', '承認待ち'
        APPROVED = 'approved', '承認済み'
        REJECTED = 'rejected', '差し戻し'
        PAID = 'paid', '支払済み'

    SPENT_STATUSES = (Status.APPROVED, Status.PAID)
    REJECTABLE_STATUSES = (Status.SUBMITTED, Status.DRAFT)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Ownership
    club = models.ForeignKey(
        'clubs.Club',
        on_delete=models.PROTECT,
        related_name='requests'
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='requests',
        help_text="Member who submitted the request"
    )

    # Descriptive fields
    date = models.DateField(blank=True, null=True, help_text="記載日")
    job_title = models.CharField(max_length=100, help_text="職名")
    applicant_name = models.CharField(max_length=100, help_text="申請者氏名")
    category = models.CharField(max_length=100, blank=True, default='', help_text="科目")
    reason = models.TextField(blank=True, default='', help_text="事由")
    payee = models.CharField(max_length=200, blank=True, default='', help_text="支払先")

    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Sum of item amounts at the time of the last save"
    )

    # Workflow
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.SUBMITTED
    )
    rejection_reason = models.TextField(blank=True, null=True)
    revision_number = models.PositiveIntegerField(default=1)

    receipt_path = models.CharField(
        max_length=500,
        blank=True,
        null=True,
        help_text="Path of the uploaded receipt in the receipt storage"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = RequestQuerySet.as_manager()

    class Meta:
        db_table = 'requests'
        ordering = ['-created_at']
        verbose_name = 'Request'
        verbose_name_plural = 'Requests'
        indexes = [
            models.Index(fields=['club', 'status'], name='requests_club_status_idx'),
        ]

    def __str__(self):
        return f"{self.applicant_name} {self.category} - {self.get_status_display()}"

    @property
    def can_be_resubmitted(self):
        return self.status == self.Status.REJECTED

    @property
    def approval_flow(self):
        """Ordered list of approval entries, insertion order = approval order"""
        return [approval.as_entry() for approval in self.approvals.all()]

    def approved_roles(self):
        return set(self.approvals.values_list('role', flat=True))

    def pending_roles(self):
        approved = self.approved_roles()
        return [role for role in APPROVAL_ROLES if role not in approved]


class RequestItem(models.Model):
    """
    One line of a request's itemized detail
    """
    request = models.ForeignKey(
        Request,
        on_delete=models.CASCADE,
        related_name='items'
    )
    item_name = models.CharField(max_length=200)
    quantity = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=1,
        validators=[MinValueValidator(0)]
    )
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)]
    )
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        editable=False
    )
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'request_items'
        ordering = ['sort_order']

    def save(self, *args, **kwargs):
        """Auto-calculate amount"""
        self.amount = line_amount(self.quantity, self.unit_price)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.item_name} x{self.quantity}"


class Approval(models.Model):
    """
    One role's sign-off on a request. Immutable once written.
    """

    ROLE_CHOICES = [(role, role) for role in APPROVAL_ROLES]

    request = models.ForeignKey(
        Request,
        on_delete=models.CASCADE,
        related_name='approvals'
    )
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)
    name = models.CharField(max_length=100, help_text="Approver name stamped on the slip")
    approved_at = models.DateTimeField(default=timezone.now)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='approvals_given',
        blank=True,
        null=True
    )

    class Meta:
        db_table = 'approvals'
        ordering = ['approved_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['request', 'role'], name='approvals_unique_request_role'),
        ]

    def __str__(self):
        return f"{self.request_id} - {self.role} {self.name}"

    def as_entry(self):
        return {
            'role': self.role,
            'name': self.name,
            'approved_at': self.approved_at.isoformat(),
        }
