from django.contrib import admin
from .models import ClientRating, User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = (
        'username', 'email', 'phone_number', 'user_type', 'transcriber_status',
        'is_online', 'is_available', 'current_job', 'is_superuser'
    )
    list_filter = ('user_type', 'transcriber_status', 'is_online', 'is_available')
    search_fields = ('username', 'email', 'phone_number')
    # current_job is owned by the availability coordinator
    readonly_fields = ('current_job', 'transcriber_completed_jobs', 'client_completed_jobs')


@admin.register(ClientRating)
class ClientRatingAdmin(admin.ModelAdmin):
    list_display = ('client', 'admin', 'score', 'created_at')
    search_fields = ('client__username', 'admin__username')
