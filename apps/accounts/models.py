from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models


class ActiveUserManager(UserManager):
    """
    User manager aware of the soft-delete marker
    """

    def active(self):
        return self.filter(deleted_at__isnull=True, is_active=True)


class User(AbstractUser):
    """
    Portal user linked to one club, with an administrative role tag
    """

    class Role(models.TextChoices):
        MEMBER = 'member', '部員'
        ADMIN = 'admin', '管理者'
        ADVISOR = 'advisor', '顧問'
        APPROVER = 'approver', '決裁者'
        GLOBAL_ADMIN = 'global_admin', '全体管理者'

    ADMINISTRATIVE_ROLES = (
        Role.ADMIN,
        Role.ADVISOR,
        Role.APPROVER,
        Role.GLOBAL_ADMIN,
    )

    club = models.ForeignKey(
        'clubs.Club',
        on_delete=models.PROTECT,
        related_name='members',
        blank=True,
        null=True,
        help_text="Club this user belongs to (set during first-time setup)"
    )

    display_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="Name shown on requests and approval stamps"
    )

    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.MEMBER,
        help_text="Role gates access to administrative surfaces"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = ActiveUserManager()

    class Meta:
        db_table = 'users'
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def full_name(self):
        if self.display_name:
            return self.display_name
        return f"{self.last_name} {self.first_name}".strip()

    @property
    def is_soft_deleted(self):
        return self.deleted_at is not None

    def is_administrator(self):
        """Check if user can open the administrative dashboard"""
        return self.role in self.ADMINISTRATIVE_ROLES

    def is_global_admin(self):
        return self.role == self.Role.GLOBAL_ADMIN

    def has_completed_setup(self):
        return self.club_id is not None
