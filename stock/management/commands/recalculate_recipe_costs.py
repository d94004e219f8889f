"""
Refresh recipe cost snapshots.

    python manage.py recalculate_recipe_costs              # stale recipes only
    python manage.py recalculate_recipe_costs --all --method purchase_price
"""
import logging

from django.core.management.base import BaseCommand, CommandError

from stock.models import RecipeCostCalculation
from stock.services import RecipeCostService, ServiceError

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Recalculate recipe costs whose latest snapshot is missing or outdated'

    def add_arguments(self, parser):
        parser.add_argument('--all', action='store_true', help='Recalculate every active recipe')
        parser.add_argument(
            '--method',
            default=RecipeCostCalculation.CalculationMethod.FIFO,
            choices=RecipeCostCalculation.CalculationMethod.values,
            help='Costing method (default: fifo)'
        )
        parser.add_argument(
            '--max-age-days',
            type=int,
            default=None,
            help='Freshness window in days (default: from stock settings)'
        )

    def handle(self, *args, **options):
        try:
            result = RecipeCostService.recalculate_stale(
                method=options['method'],
                include_fresh=options['all'],
                max_age_days=options['max_age_days'],
            )
        except ServiceError as e:
            logger.error(f'Recipe cost recalculation failed: {e.message}')
            raise CommandError(e.message)

        for row in result['recalculated']:
            self.stdout.write(f"  {row['recipe_name']}: {row['total_cost']}")

        self.stdout.write(self.style.SUCCESS(
            f"{result['message']} ({result['skipped']} up to date)"
        ))
