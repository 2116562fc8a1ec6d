from django.contrib import admin
from .models import Payment, ReconciliationItem


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('provider_reference', 'negotiation', 'client', 'transcriber', 'amount', 'currency',
                    'amount_paid', 'currency_paid', 'payout_status', 'transaction_date')
    list_filter = ('provider', 'payout_status', 'currency_paid')
    search_fields = ('provider_reference', 'client__username', 'transcriber__username')
    readonly_fields = ('negotiation', 'client', 'transcriber', 'amount', 'currency', 'amount_paid',
                       'currency_paid', 'exchange_rate_used', 'transcriber_earning', 'provider',
                       'provider_reference', 'provider_status', 'transaction_date')


@admin.register(ReconciliationItem)
class ReconciliationItemAdmin(admin.ModelAdmin):
    list_display = ('provider', 'reference', 'negotiation_id', 'reason', 'resolved', 'created_at')
    list_filter = ('resolved', 'reason', 'provider')
    search_fields = ('reference',)
