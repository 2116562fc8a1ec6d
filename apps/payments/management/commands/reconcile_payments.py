from django.core.management.base import BaseCommand

from apps.payments.models import ReconciliationItem
from apps.payments.settlement import SettlementEngine
from core.exceptions import ScribeLinkError


class Command(BaseCommand):
    help = 'Re-run verification for charges that were confirmed by a provider but not recorded.'

    def handle(self, *args, **options):
        engine = SettlementEngine()
        # Duplicate charges are refunded by hand.
        open_items = ReconciliationItem.objects.filter(resolved=False).exclude(
            reason=ReconciliationItem.DUPLICATE_CHARGE
        ).order_by('created_at')
        references = {}
        for item in open_items:
            references.setdefault(item.reference, item)

        resolved = failed = 0
        for reference, item in references.items():
            try:
                engine.verify(reference, item.negotiation_id, item.provider)
            except ScribeLinkError as e:
                failed += 1
                self.stdout.write(self.style.WARNING(f"{reference}: still unresolved ({e.code}: {str(e)})"))
                continue
            resolved += 1
            self.stdout.write(f"{reference}: resolved")
        self.stdout.write(self.style.SUCCESS(f"Reconciliation finished: {resolved} resolved, {failed} unresolved"))
