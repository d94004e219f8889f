from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from stock.models import InventoryTransaction, Material, StockBatch
from stock.services import (
    BusinessRuleError,
    InsufficientStockError,
    InventoryService,
    InventoryTransactionService,
    MaterialService,
    NotFoundError,
    StockSettingsService,
    ValidationError,
)
from stock.tests.factories import add_batch, make_material, make_user


class ReceiveTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.flour = make_material("Flour")

    def test_receipt_creates_batch_ledger_row_and_quantity(self):
        result = InventoryService.receive(self.flour.id, "25", "1.80", actor_id=self.user.id)

        self.assertTrue(result.receipt.receipt_code.startswith("RCV-"))
        self.assertEqual(result.batch.material_receipt_id, result.receipt.id)
        self.assertEqual(result.batch.remaining_quantity, Decimal("25"))
        self.assertEqual(result.batch.unit_cost, Decimal("1.80"))

        txn = result.transaction
        self.assertEqual(txn.transaction_type, "receipt")
        self.assertEqual(txn.quantity, Decimal("25"))
        self.assertEqual(txn.remaining_quantity, Decimal("25"))
        self.assertEqual(txn.total_cost, Decimal("45.00"))
        self.assertEqual(txn.reference_type, "stock.materialreceipt")
        self.assertEqual(txn.reference_id, result.receipt.id)
        self.assertEqual(txn.user_id, self.user.id)
        self.assertEqual(txn.notes, f"Material receipt: {result.receipt.receipt_code}")

        self.flour.refresh_from_db()
        self.assertEqual(self.flour.quantity, Decimal("25"))

    def test_receipt_codes_are_sequential(self):
        first = InventoryService.receive(self.flour.id, "1", "1.00")
        second = InventoryService.receive(self.flour.id, "1", "1.00")

        self.assertEqual(int(second.receipt.receipt_code[-4:]), int(first.receipt.receipt_code[-4:]) + 1)

    def test_receipt_rejects_bad_input(self):
        with self.assertRaises(ValidationError):
            InventoryService.receive(self.flour.id, "0", "1.00")
        with self.assertRaises(ValidationError):
            InventoryService.receive(self.flour.id, "5", "-1")
        with self.assertRaises(ValidationError):
            InventoryService.receive(
                self.flour.id, "5", "1.00",
                expiry_date=timezone.localdate() - timedelta(days=1),
            )
        with self.assertRaises(NotFoundError):
            InventoryService.receive(999999, "5", "1.00")

        self.assertFalse(StockBatch.objects.exists())

    def test_healthy_receipt_raises_no_alert(self):
        InventoryService.receive(self.flour.id, "5", "1.00")

        self.assertFalse(self.flour.alerts.filter(is_resolved=False).exists())


class ConsumeTests(TestCase):
    def setUp(self):
        self.flour = make_material("Flour")
        add_batch(self.flour, 50, "2.00", days_ago=2)
        add_batch(self.flour, 30, "3.00", days_ago=1)

    def test_consumption_writes_one_negative_ledger_row(self):
        result, txn = InventoryService.consume(self.flour.id, "60", notes="waste")

        self.assertEqual(txn.transaction_type, "consumption")
        self.assertEqual(txn.quantity, Decimal("-60"))
        self.assertEqual(txn.total_cost, Decimal("310.00"))
        self.assertEqual(txn.unit_cost, Decimal("5.1667"))
        self.assertIsNone(txn.remaining_quantity)
        self.assertEqual(result.total_cost, txn.total_cost)

        self.flour.refresh_from_db()
        self.assertEqual(self.flour.quantity, Decimal("20"))

    def test_failed_consumption_leaves_material_and_ledger_untouched(self):
        with self.assertRaises(InsufficientStockError):
            InventoryService.consume(self.flour.id, "100")

        self.flour.refresh_from_db()
        self.assertEqual(self.flour.quantity, Decimal("80"))
        self.assertFalse(InventoryTransaction.objects.exists())


class AdjustmentTests(TestCase):
    def setUp(self):
        self.flour = make_material("Flour", purchase_price=Decimal("2.50"))
        add_batch(self.flour, 10, "2.00", days_ago=1)

    def test_positive_adjustment_opens_batch_at_purchase_price(self):
        result = InventoryService.adjust_stock(self.flour.id, "4", reason="found a sack")

        self.assertTrue(result.batch.batch_number.startswith("ADJ-"))
        self.assertEqual(result.batch.unit_cost, Decimal("2.50"))
        self.assertEqual(result.transaction.transaction_type, "adjustment")
        self.assertEqual(result.transaction.quantity, Decimal("4"))
        self.assertEqual(result.transaction.total_cost, Decimal("10.00"))
        self.assertEqual(result.transaction.notes, "found a sack")
        self.assertEqual(result.material.quantity, Decimal("14"))

    def test_negative_adjustment_draws_fifo(self):
        result = InventoryService.adjust_stock(self.flour.id, "-4", reason="spillage")

        self.assertIsNone(result.batch)
        self.assertEqual(result.consumption.total_cost, Decimal("8.00"))
        self.assertEqual(result.transaction.quantity, Decimal("-4"))
        self.assertEqual(result.transaction.unit_cost, Decimal("2.00"))
        self.assertEqual(result.material.quantity, Decimal("6"))
        self.assertEqual(
            InventoryTransaction.objects.filter(material=self.flour).count(), 1
        )

    def test_zero_adjustment_is_rejected(self):
        with self.assertRaises(ValidationError):
            InventoryService.adjust_stock(self.flour.id, "0")

    def test_negative_adjustment_beyond_stock_fails(self):
        with self.assertRaises(InsufficientStockError):
            InventoryService.adjust_stock(self.flour.id, "-11")

        self.flour.refresh_from_db()
        self.assertEqual(self.flour.quantity, Decimal("10"))


class QuantityInvariantTests(TestCase):
    def test_quantity_matches_batches_after_mixed_operations(self):
        flour = make_material("Flour")
        sugar = make_material("Sugar")

        InventoryService.receive(flour.id, "10", "2.00")
        InventoryService.receive(flour.id, "5", "2.50")
        InventoryService.receive(sugar.id, "3", "1.00")
        InventoryService.consume(flour.id, "12")
        InventoryService.adjust_stock(flour.id, "2")
        InventoryService.adjust_stock(sugar.id, "-0.5")

        self.assertEqual(MaterialService.reconcile(), [])
        flour.refresh_from_db()
        self.assertEqual(flour.quantity, Decimal("5"))

    def test_reconcile_reports_drift(self):
        flour = make_material("Flour")
        add_batch(flour, 5, "2.00")
        Material.objects.filter(id=flour.id).update(quantity=Decimal("7"))

        mismatches = MaterialService.reconcile()

        self.assertEqual(len(mismatches), 1)
        self.assertEqual(mismatches[0]["material_id"], flour.id)
        self.assertEqual(Decimal(mismatches[0]["difference"]), Decimal("2"))


class MaterialServiceTests(TestCase):
    def test_quantity_cannot_be_set_directly(self):
        with self.assertRaises(BusinessRuleError):
            MaterialService.create("Salt", quantity=Decimal("5"))

        flour = make_material("Flour")
        with self.assertRaises(BusinessRuleError):
            MaterialService.update(flour.id, quantity=Decimal("5"))

    def test_negative_thresholds_are_rejected(self):
        with self.assertRaises(ValidationError):
            MaterialService.create("Salt", minimum_stock_level="-1")

    def test_inventory_summary(self):
        flour = make_material("Flour", minimum_stock_level=Decimal("10"))
        make_material("Salt")
        add_batch(flour, 4, "2.00")

        summary = MaterialService.inventory_summary()

        self.assertEqual(summary["total_materials"], 2)
        self.assertEqual(summary["low_stock_count"], 1)
        self.assertEqual(summary["out_of_stock_count"], 1)
        self.assertEqual(Decimal(summary["total_stock_value"]), Decimal("8"))


class LedgerQueryTests(TestCase):
    def test_totals_and_filters(self):
        flour = make_material("Flour")
        InventoryService.receive(flour.id, "10", "2.00")
        InventoryService.consume(flour.id, "4")

        totals = InventoryTransactionService.totals(material_id=flour.id)

        self.assertEqual(totals["receipt"]["quantity"], Decimal("10"))
        self.assertEqual(totals["consumption"]["quantity"], Decimal("-4"))
        self.assertEqual(totals["adjustment"]["quantity"], Decimal("0"))

        listed = InventoryTransactionService.list(material_id=flour.id, transaction_type="consumption")
        self.assertEqual(listed["pagination"]["total_items"], 1)

        with self.assertRaises(ValidationError):
            InventoryTransactionService.list(transaction_type="theft")

    def test_ledger_rows_cannot_have_zero_quantity(self):
        flour = make_material("Flour")

        with self.assertRaises(ValidationError):
            InventoryTransactionService.record(flour, "adjustment", "0")


class StockSettingsServiceTests(TestCase):
    def test_update_validates_expiry_windows(self):
        with self.assertRaises(ValidationError):
            StockSettingsService.update(expiry_warning_days=3, expiry_critical_days=5)
        with self.assertRaises(ValidationError):
            StockSettingsService.update(expiry_warning_days=0)
        with self.assertRaises(ValidationError):
            StockSettingsService.update(colour="blue")

        result = StockSettingsService.update(expiry_warning_days=10, auto_deduct_on_completion=False)

        self.assertTrue(result["success"])
        self.assertFalse(StockSettingsService.should_deduct_on_completion())
        self.assertEqual(StockSettingsService.load().expiry_warning_days, 10)

    def test_toggle_stock(self):
        StockSettingsService.toggle_stock(False)

        self.assertFalse(StockSettingsService.is_enabled())
        self.assertFalse(StockSettingsService.should_deduct_on_completion())
