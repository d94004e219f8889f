"""
Re-evaluate stock alerts for every active material.

Meant to run on a schedule (cron / systemd timer), e.g. hourly:
    python manage.py check_stock_levels
    python manage.py check_stock_levels --expiry-only
"""
import logging

from django.core.management.base import BaseCommand, CommandError

from stock.services import MaterialService, ServiceError, StockAlertService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Check stock levels and batch expiry, raising or refreshing alerts'

    def add_arguments(self, parser):
        parser.add_argument('--expiry-only', action='store_true', help='Only check batch expiry')
        parser.add_argument(
            '--reconcile',
            action='store_true',
            help='Also report materials whose quantity differs from their batches'
        )

    def handle(self, *args, **options):
        try:
            if options['expiry_only']:
                result = StockAlertService.check_expiring_batches()
                self.stdout.write(self.style.SUCCESS(result['message']))
                if result['critical']:
                    self.stdout.write(self.style.WARNING(f"{result['critical']} batch alert(s) are critical"))
            else:
                result = StockAlertService.check_all()
                self.stdout.write(self.style.SUCCESS(
                    f"{result['message']}, {result['alerts_triggered']} alert(s) active"
                ))
                for alert_type, count in sorted(result['by_type'].items()):
                    self.stdout.write(f'  {alert_type}: {count}')
        except ServiceError as e:
            logger.error(f'Stock check failed: {e.message}')
            raise CommandError(e.message)

        if options['reconcile']:
            mismatches = MaterialService.reconcile()
            if not mismatches:
                self.stdout.write(self.style.SUCCESS('All materials reconcile with their batches.'))
                return
            for row in mismatches:
                self.stdout.write(self.style.ERROR(
                    f"{row['name']} (#{row['material_id']}): quantity {row['quantity']}, "
                    f"batches {row['batch_total']}"
                ))
            raise CommandError(f'{len(mismatches)} material(s) out of balance')
