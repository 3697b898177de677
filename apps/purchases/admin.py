from django.contrib import admin
from .models import Request, Approval, RequestItem
from .services import mark_paid, soft_delete_requests


class RequestItemInline(admin.TabularInline):
    model = RequestItem
    extra = 0
    readonly_fields = ('amount',)


class ApprovalInline(admin.TabularInline):
    model = Approval
    extra = 0
    readonly_fields = ('role', 'name', 'approved_at', 'approved_by')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Request)
class RequestAdmin(admin.ModelAdmin):
    list_display = [
        'applicant_name', 'club', 'category', 'total_amount', 'status',
        'revision_number', 'approval_count', 'created_at'
    ]
    list_filter = ['status', 'club', 'created_at']
    search_fields = ['applicant_name', 'category', 'reason', 'club__name', 'user__username']
    readonly_fields = [
        'id', 'total_amount', 'revision_number', 'created_at', 'updated_at'
    ]
    inlines = [RequestItemInline, ApprovalInline]
    actions = ['mark_as_paid', 'soft_delete']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'club', 'user', 'date', 'job_title', 'applicant_name')
        }),
        ('Details', {
            'fields': ('category', 'reason', 'payee', 'total_amount', 'receipt_path')
        }),
        ('Status & Workflow', {
            'fields': ('status', 'revision_number', 'rejection_reason')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at', 'deleted_at'),
            'classes': ('collapse',)
        }),
    )

    def approval_count(self, obj):
        return f"{obj.approvals.count()}/5"
    approval_count.short_description = "Approvals"

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('club', 'user')

    def mark_as_paid(self, request, queryset):
        count = mark_paid(list(queryset.values_list('pk', flat=True)))
        self.message_user(request, f"{count} requests marked as 支払済み.")
    mark_as_paid.short_description = "Mark selected approved requests as paid"

    def soft_delete(self, request, queryset):
        count = soft_delete_requests(list(queryset.values_list('pk', flat=True)))
        self.message_user(request, f"{count} requests deleted.")
    soft_delete.short_description = "Soft-delete selected requests"


@admin.register(Approval)
class ApprovalAdmin(admin.ModelAdmin):
    list_display = ['request', 'role', 'name', 'approved_by', 'approved_at']
    list_filter = ['role', 'approved_at']
    search_fields = ['name', 'request__applicant_name', 'approved_by__username']
    readonly_fields = ['approved_at']

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('request', 'approved_by')
