from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils import timezone
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin configuration for custom User model
    """

    list_display = ('username', 'display_name', 'club', 'role', 'is_active', 'deleted_at', 'date_joined')
    list_filter = ('role', 'is_active', 'club', 'date_joined')
    search_fields = ('username', 'email', 'display_name', 'first_name', 'last_name', 'club__name')
    ordering = ('-date_joined',)

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Club & Role', {
            'fields': ('club', 'display_name', 'role'),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at', 'deleted_at'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Club & Role', {
            'fields': ('club', 'display_name', 'role'),
        }),
    )

    readonly_fields = ('created_at', 'updated_at', 'date_joined', 'last_login')

    actions = ['make_member', 'make_admin', 'soft_delete']

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('club')

    def make_member(self, request, queryset):
        count = queryset.update(role=User.Role.MEMBER)
        self.message_user(request, f"{count} users marked as 部員.")
    make_member.short_description = "Mark selected users as 部員"

    def make_admin(self, request, queryset):
        count = queryset.update(role=User.Role.ADMIN)
        self.message_user(request, f"{count} users marked as 管理者.")
    make_admin.short_description = "Mark selected users as 管理者"

    def soft_delete(self, request, queryset):
        count = queryset.filter(deleted_at__isnull=True).update(deleted_at=timezone.now(), is_active=False)
        self.message_user(request, f"{count} users deleted.")
    soft_delete.short_description = "Soft-delete selected users"
