from django.db import models
from django.conf import settings


class ManagementLog(models.Model):
    """Audit trail of admin overrides (forced deletion, payout actions)."""
    admin = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='management_actions')
    action = models.CharField(max_length=100)
    details = models.TextField()
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.admin.username} - {self.action} at {self.timestamp}"

    @classmethod
    def record(cls, admin, action, details):
        return cls.objects.create(admin=admin, action=action, details=details)
