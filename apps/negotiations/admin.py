from django.contrib import admin
from .models import Negotiation


@admin.register(Negotiation)
class NegotiationAdmin(admin.ModelAdmin):
    list_display = ('id', 'client', 'transcriber', 'status', 'agreed_price_usd', 'deadline_hours', 'due_date', 'created_at')
    list_filter = ('status',)
    search_fields = ('client__username', 'transcriber__username', 'requirements')
    # Status only moves through NegotiationService and the settlement engine.
    readonly_fields = ('client', 'transcriber', 'status', 'due_date', 'completed_at', 'created_at', 'updated_at')
