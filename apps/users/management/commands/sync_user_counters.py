from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from apps.users import directory


class Command(BaseCommand):
    help = 'Recompute completed-job counters and average ratings.'

    def add_arguments(self, parser):
        parser.add_argument('--user', type=int, help='Only resync this user id.')

    def handle(self, *args, **options):
        users = get_user_model().objects.filter(user_type__in=['client', 'transcriber'])
        if options.get('user'):
            users = users.filter(pk=options['user'])

        synced = 0
        for user in users.iterator():
            directory.recount_completed_jobs(user)
            if user.is_transcriber:
                directory.refresh_transcriber_rating(user.pk)
            else:
                directory.refresh_client_rating(user.pk)
            synced += 1
        self.stdout.write(self.style.SUCCESS(f"Synced counters for {synced} users"))
