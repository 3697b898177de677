from django.contrib import admin
from django.utils import timezone

from .models import Club
from .services import budget_usage


@admin.register(Club)
class ClubAdmin(admin.ModelAdmin):
    list_display = ['name', 'total_budget', 'spent', 'deleted_at', 'created_at']
    list_filter = ['created_at']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    actions = ['soft_delete']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'name', 'total_budget')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at', 'deleted_at'),
            'classes': ('collapse',)
        }),
    )

    def spent(self, obj):
        return budget_usage(obj)['spent']
    spent.short_description = "Spent"

    def soft_delete(self, request, queryset):
        count = queryset.filter(deleted_at__isnull=True).update(deleted_at=timezone.now())
        self.message_user(request, f"{count} clubs deleted.")
    soft_delete.short_description = "Soft-delete selected clubs"
