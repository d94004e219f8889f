from decimal import Decimal
from io import StringIO

from django.core.management import CommandError, call_command
from django.test import TestCase

from stock.models import Material, RecipeCostCalculation, StockAlert
from stock.tests.factories import add_batch, make_material, make_recipe


class CheckStockLevelsCommandTests(TestCase):
    def test_raises_alerts_for_every_material(self):
        make_material("Flour")
        out = StringIO()

        call_command("check_stock_levels", stdout=out)

        self.assertIn("out_of_stock: 1", out.getvalue())
        self.assertTrue(StockAlert.objects.filter(alert_type="out_of_stock").exists())

    def test_expiry_only(self):
        milk = make_material("Milk", minimum_stock_level=Decimal("100"))
        add_batch(milk, 5, "1.00", expiry_in_days=1)
        out = StringIO()

        call_command("check_stock_levels", "--expiry-only", stdout=out)

        self.assertIn("critical", out.getvalue())
        self.assertFalse(StockAlert.objects.filter(alert_type="low_stock").exists())

    def test_reconcile_fails_on_drift(self):
        flour = make_material("Flour")
        add_batch(flour, 5, "2.00")
        Material.objects.filter(id=flour.id).update(quantity=Decimal("4"))

        with self.assertRaises(CommandError):
            call_command("check_stock_levels", "--reconcile", stdout=StringIO())


class RecalculateRecipeCostsCommandTests(TestCase):
    def test_recalculates_missing_snapshots(self):
        flour = make_material("Flour")
        add_batch(flour, 10, "2.00")
        make_recipe("Bread", [(flour, "2")])
        out = StringIO()

        call_command("recalculate_recipe_costs", stdout=out)
        call_command("recalculate_recipe_costs", stdout=out)
        call_command("recalculate_recipe_costs", "--all", "--method", "purchase_price", stdout=out)

        methods = list(RecipeCostCalculation.objects.order_by("id").values_list("calculation_method", flat=True))
        self.assertEqual(methods, ["fifo", "purchase_price"])
        self.assertIn("1 up to date", out.getvalue())
