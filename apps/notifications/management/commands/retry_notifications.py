from django.core.management.base import BaseCommand

from apps.notifications.notifier import Notifier


class Command(BaseCommand):
    help = 'Re-dispatch notifications that failed or were never delivered.'

    def add_arguments(self, parser):
        parser.add_argument('--max-attempts', type=int, default=5)
        parser.add_argument('--limit', type=int, default=None)

    def handle(self, *args, **options):
        results = Notifier().retry_failed(max_attempts=options['max_attempts'], limit=options['limit'])
        self.stdout.write(self.style.SUCCESS(
            f"Retried notifications: {results['sent']} sent, {results['failed']} failed"
        ))
