from datetime import timedelta
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from stock.models import RecipeCostCalculation, RecipeMaterial, StockBatch
from stock.services import RecipeCostService, ValidationError
from stock.services.costing_service import FIFO_FALLBACK_NOTE
from stock.signals import recipe_cost_updated
from stock.tests.factories import add_batch, make_material, make_recipe, make_user


class RecipePricingTests(TestCase):
    def setUp(self):
        self.flour = make_material("Flour", purchase_price=Decimal("2.00"))
        add_batch(self.flour, 5, "2.00", days_ago=2)
        add_batch(self.flour, 5, "2.50", days_ago=1)
        self.butter = make_material(
            "Butter", stock_unit="kg", recipe_unit="g",
            conversion_rate=Decimal("0.001"), purchase_price=Decimal("8.00"),
        )
        add_batch(self.butter, 2, "8.00", days_ago=1)
        self.recipe = make_recipe(
            "Brioche", [(self.flour, "6"), (self.butter, "500")], serving_size=4
        )

    def test_fifo_walks_batches_without_consuming(self):
        priced = RecipeCostService.price(self.recipe, "fifo")

        flour_line, butter_line = priced["breakdown"]
        self.assertEqual(flour_line["total_cost"], "12.5000")
        self.assertEqual(flour_line["method"], "fifo")
        self.assertEqual(len(flour_line["batches"]), 2)
        self.assertEqual(butter_line["stock_quantity"], "0.5000")
        self.assertEqual(butter_line["recipe_unit"], "g")
        self.assertEqual(butter_line["total_cost"], "4.0000")
        self.assertEqual(priced["total_cost"], Decimal("16.5000"))
        self.assertEqual(priced["cost_per_serving"], Decimal("4.1250"))

        remaining = StockBatch.objects.filter(material=self.flour).order_by("id")
        self.assertEqual([b.remaining_quantity for b in remaining], [Decimal("5"), Decimal("5")])

    def test_fifo_falls_back_to_purchase_price_on_shortfall(self):
        recipe = make_recipe("Loaf", [(self.flour, "12")])

        priced = RecipeCostService.price(recipe, "fifo")

        line = priced["breakdown"][0]
        self.assertEqual(line["method"], "average")
        self.assertEqual(line["note"], FIFO_FALLBACK_NOTE)
        self.assertEqual(line["total_cost"], "24.0000")
        self.assertNotIn("batches", line)

    def test_purchase_price_method_ignores_batches(self):
        priced = RecipeCostService.price(self.recipe, "purchase_price")

        self.assertEqual(priced["breakdown"][0]["total_cost"], "12.0000")
        self.assertEqual(priced["total_cost"], Decimal("16.0000"))

    def test_average_cost_prices_like_purchase_price(self):
        average = RecipeCostService.price(self.recipe, "average_cost")
        purchase = RecipeCostService.price(self.recipe, "purchase_price")

        self.assertEqual(average["total_cost"], purchase["total_cost"])
        self.assertEqual(average["method"], "average_cost")

    def test_line_below_stock_precision_costs_nothing(self):
        recipe = make_recipe("Glaze", [(self.butter, "0.01"), (self.flour, "1")])

        priced = RecipeCostService.price(recipe, "fifo")
        calc = RecipeCostService.calculate(recipe.id)

        butter_line = priced["breakdown"][0]
        self.assertEqual(butter_line["stock_quantity"], "0.0000")
        self.assertEqual(butter_line["total_cost"], "0.0000")
        self.assertNotIn("batches", butter_line)
        self.assertEqual(priced["total_cost"], Decimal("2.0000"))
        self.assertEqual(calc.total_cost, Decimal("2"))

    def test_recipe_lines_need_a_positive_quantity(self):
        recipe = make_recipe("Empty", [])

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                RecipeMaterial.objects.create(recipe=recipe, material=self.flour, quantity=Decimal("0"))

    def test_unknown_method_is_rejected(self):
        with self.assertRaises(ValidationError):
            RecipeCostService.price(self.recipe, "lifo")


class CostSnapshotTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.flour = make_material("Flour")
        add_batch(self.flour, 10, "2.00", days_ago=1)
        self.recipe = make_recipe("Bread", [(self.flour, "2")], serving_size=2)

    def test_calculate_persists_snapshot(self):
        calc = RecipeCostService.calculate(self.recipe.id, actor_id=self.user.id)

        calc.refresh_from_db()
        self.assertEqual(calc.total_cost, Decimal("4"))
        self.assertEqual(calc.cost_per_serving, Decimal("2"))
        self.assertEqual(calc.calculation_method, "fifo")
        self.assertEqual(calc.calculated_by_id, self.user.id)
        self.assertEqual(calc.cost_breakdown[0]["material_name"], "Flour")
        self.assertEqual(RecipeCostService.get_latest(self.recipe.id), calc)

    def test_calculate_sends_signal_on_commit(self):
        received = []

        def receiver(sender, calculation, **kwargs):
            received.append(calculation.id)

        recipe_cost_updated.connect(receiver)
        self.addCleanup(recipe_cost_updated.disconnect, receiver)

        with self.captureOnCommitCallbacks(execute=True):
            calc = RecipeCostService.calculate(self.recipe.id)

        self.assertEqual(received, [calc.id])

    def test_needs_recalculation(self):
        self.assertTrue(RecipeCostService.needs_recalculation(self.recipe.id))

        calc = RecipeCostService.calculate(self.recipe.id)
        self.assertFalse(RecipeCostService.needs_recalculation(self.recipe.id))

        RecipeCostCalculation.objects.filter(id=calc.id).update(
            calculation_date=timezone.now() - timedelta(days=8)
        )
        self.assertTrue(RecipeCostService.needs_recalculation(self.recipe.id))
        self.assertFalse(RecipeCostService.needs_recalculation(self.recipe.id, max_age_days=30))

    def test_compare_and_trend(self):
        baseline = RecipeCostService.calculate(self.recipe.id)
        RecipeCostCalculation.objects.filter(id=baseline.id).update(
            calculation_date=timezone.now() - timedelta(days=3)
        )
        baseline.refresh_from_db()

        self.flour.purchase_price = Decimal("2.50")
        self.flour.save()
        latest = RecipeCostService.calculate(self.recipe.id, method="purchase_price")

        comparison = RecipeCostService.compare(latest, baseline)
        self.assertEqual(Decimal(comparison["absolute_variance"]), Decimal("1"))
        self.assertEqual(comparison["percentage_variance"], "25.00")
        self.assertTrue(comparison["is_increase"])

        trend = RecipeCostService.get_cost_trend(self.recipe.id, days=30)
        self.assertEqual([t["method"] for t in trend], ["purchase_price", "fifo"])

    def test_most_expensive_line(self):
        sugar = make_material("Sugar", purchase_price=Decimal("9.00"))
        recipe = make_recipe("Cake", [(self.flour, "1"), (sugar, "1")])

        calc = RecipeCostService.calculate(recipe.id, method="purchase_price")

        self.assertEqual(RecipeCostService.most_expensive_line(calc)["material_name"], "Sugar")

    def test_recalculate_stale_skips_fresh_recipes(self):
        other = make_recipe("Roll", [(self.flour, "0.5")])
        RecipeCostService.calculate(self.recipe.id)

        result = RecipeCostService.recalculate_stale()

        self.assertEqual([r["recipe_id"] for r in result["recalculated"]], [other.id])
        self.assertEqual(result["skipped"], 1)

        result = RecipeCostService.recalculate_stale(include_fresh=True)
        self.assertEqual(len(result["recalculated"]), 2)
