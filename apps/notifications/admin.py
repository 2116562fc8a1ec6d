from django.contrib import admin
from .models import NotificationLog


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ('event_type', 'recipient', 'status', 'attempts', 'created_at', 'sent_at')
    list_filter = ('status', 'event_type')
    search_fields = ('recipient__username', 'subject')
    readonly_fields = ('payload', 'attempts', 'sent_at', 'created_at')
