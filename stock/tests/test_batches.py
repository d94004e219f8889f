from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from stock.models import InventoryTransaction, MaterialReceipt, StockBatch
from stock.services import (
    BatchDeletionConflictError,
    InsufficientBatchQuantityError,
    InventoryService,
    MaterialService,
    StockBatchService,
)
from stock.tests.factories import add_batch, make_material


class AvailableBatchesTests(TestCase):
    def setUp(self):
        self.flour = make_material("Flour")

    def test_batches_are_ordered_oldest_received_first(self):
        newer = add_batch(self.flour, 5, "2.50", days_ago=1)
        older = add_batch(self.flour, 5, "2.00", days_ago=2)

        batches = StockBatchService.available_batches(self.flour.id)

        self.assertEqual([b.id for b in batches], [older.id, newer.id])

    def test_same_day_batches_fall_back_to_insertion_order(self):
        first = add_batch(self.flour, 5, "2.00", days_ago=1)
        second = add_batch(self.flour, 5, "3.00", days_ago=1)

        batches = StockBatchService.available_batches(self.flour.id)

        self.assertEqual([b.id for b in batches], [first.id, second.id])

    def test_empty_and_expired_batches_are_not_available(self):
        add_batch(self.flour, 5, "2.00", days_ago=3, remaining_quantity=Decimal("0"))
        add_batch(self.flour, 5, "2.00", days_ago=2, expiry_in_days=0)
        live = add_batch(self.flour, 5, "2.00", days_ago=1, expiry_in_days=3)

        batches = StockBatchService.available_batches(self.flour.id)

        self.assertEqual([b.id for b in batches], [live.id])
        self.assertEqual(StockBatchService.available_quantity(self.flour.id), Decimal("5"))
        self.assertEqual(StockBatchService.remaining_total(self.flour.id), Decimal("10"))


class BatchNumberTests(TestCase):
    def test_batch_numbers_follow_prefix_date_sequence(self):
        flour = make_material("Flour")
        today = timezone.localdate().strftime("%Y%m%d")

        first = StockBatchService.create_batch(flour, Decimal("5"), Decimal("2.00"))
        second = StockBatchService.create_batch(flour, Decimal("5"), Decimal("2.00"))

        self.assertEqual(flour.batch_prefix, f"FLO{flour.id:03d}")
        self.assertEqual(first.batch_number, f"{flour.batch_prefix}-{today}-001")
        self.assertEqual(second.batch_number, f"{flour.batch_prefix}-{today}-002")
        self.assertEqual(first.remaining_quantity, first.quantity)

    def test_adjustment_batches_use_their_own_sequence(self):
        flour = make_material("Flour")
        today = timezone.localdate().strftime("%Y%m%d")

        StockBatchService.create_batch(flour, Decimal("5"), Decimal("2.00"))
        adj = StockBatchService.create_batch(flour, Decimal("1"), Decimal("2.00"), adjustment=True)

        self.assertEqual(adj.batch_number, f"ADJ-{flour.batch_prefix}-{today}-001")

    def test_sequence_keeps_counting_past_999(self):
        flour = make_material("Flour")
        stem = f"{flour.batch_prefix}-{timezone.localdate().strftime('%Y%m%d')}-"
        add_batch(flour, 1, "2.00", batch_number=f"{stem}999")

        first = StockBatchService.create_batch(flour, Decimal("5"), Decimal("2.00"))
        second = StockBatchService.create_batch(flour, Decimal("5"), Decimal("2.00"))

        self.assertEqual(first.batch_number, f"{stem}1000")
        self.assertEqual(second.batch_number, f"{stem}1001")


class DecrementTests(TestCase):
    def test_decrement_reduces_remaining_quantity(self):
        flour = make_material("Flour")
        batch = add_batch(flour, 10, "2.00")

        StockBatchService.decrement(batch, Decimal("4"))

        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("6"))
        self.assertEqual(batch.usage_percentage, Decimal("40.00"))

    def test_over_draw_is_rejected_and_leaves_batch_untouched(self):
        flour = make_material("Flour")
        batch = add_batch(flour, 3, "2.00")

        with self.assertRaises(InsufficientBatchQuantityError) as ctx:
            StockBatchService.decrement(batch, Decimal("3.5"))

        self.assertEqual(ctx.exception.code, "INSUFFICIENT_BATCH_QUANTITY")
        batch.refresh_from_db()
        self.assertEqual(batch.remaining_quantity, Decimal("3"))

    def test_stale_instance_cannot_over_draw(self):
        flour = make_material("Flour")
        batch = add_batch(flour, 5, "2.00")
        stale = StockBatch.objects.get(id=batch.id)

        StockBatchService.decrement(batch, Decimal("4"))

        with self.assertRaises(InsufficientBatchQuantityError):
            StockBatchService.decrement(stale, Decimal("4"))


class BatchDeletionTests(TestCase):
    def setUp(self):
        self.flour = make_material("Flour")
        self.receipt = InventoryService.receive(self.flour.id, "10", "2.00")

    def test_untouched_batch_can_be_deleted(self):
        result = StockBatchService.delete_batch(self.receipt.batch.id)

        self.assertTrue(result["success"])
        self.assertFalse(StockBatch.objects.filter(id=self.receipt.batch.id).exists())
        self.assertFalse(MaterialReceipt.objects.filter(id=self.receipt.receipt.id).exists())
        self.flour.refresh_from_db()
        self.assertEqual(self.flour.quantity, Decimal("0"))
        reversal = InventoryTransaction.objects.filter(
            material=self.flour, transaction_type="adjustment"
        ).get()
        self.assertEqual(reversal.quantity, Decimal("-10"))
        self.assertEqual(MaterialService.reconcile(), [])

    def test_touched_batch_cannot_be_deleted(self):
        InventoryService.consume(self.flour.id, "1")

        with self.assertRaises(BatchDeletionConflictError):
            StockBatchService.delete_batch(self.receipt.batch.id)

        self.assertTrue(StockBatch.objects.filter(id=self.receipt.batch.id).exists())

    def test_receipt_of_touched_batch_cannot_be_deleted(self):
        InventoryService.consume(self.flour.id, "1")

        with self.assertRaises(BatchDeletionConflictError):
            StockBatchService.delete_receipt(self.receipt.receipt.id)

        self.assertTrue(MaterialReceipt.objects.filter(id=self.receipt.receipt.id).exists())


class BatchReportingTests(TestCase):
    def test_expiring_and_expired_listings(self):
        milk = make_material("Milk", stock_unit="l", is_perishable=True)
        add_batch(milk, 4, "1.50", days_ago=5, expiry_in_days=-1)
        soon = add_batch(milk, 6, "1.00", days_ago=1, expiry_in_days=3)
        add_batch(milk, 6, "1.00", days_ago=1, expiry_in_days=30)

        expiring = StockBatchService.get_expiring_batches(days=7)
        expired = StockBatchService.get_expired_batches()

        self.assertEqual([b["id"] for b in expiring["batches"]], [soon.id])
        self.assertEqual(expired["count"], 1)
        self.assertEqual(Decimal(expired["total_value"]), Decimal("6.00"))

    def test_valuation_uses_batch_costs(self):
        flour = make_material("Flour")
        add_batch(flour, 5, "2.00", days_ago=2)
        add_batch(flour, 4, "2.50", days_ago=1)

        self.assertEqual(StockBatchService.valuation(flour.id), Decimal("20.0000"))
        self.assertEqual(MaterialService.stock_value(flour.id), Decimal("20.0000"))

    def test_list_filters_by_material(self):
        flour = make_material("Flour")
        sugar = make_material("Sugar")
        add_batch(flour, 5, "2.00")
        add_batch(sugar, 5, "1.00")

        result = StockBatchService.list(material_id=sugar.id)

        self.assertEqual(result["pagination"]["total_items"], 1)
        self.assertEqual(result["batches"][0]["material_name"], "Sugar")

    def test_batch_days_until_expiry(self):
        flour = make_material("Flour")
        batch = add_batch(flour, 5, "2.00", expiry_in_days=4)

        self.assertEqual(batch.days_until_expiry, 4)
        self.assertFalse(batch.is_expired)
        batch.expiry_date = timezone.localdate() - timedelta(days=1)
        self.assertTrue(batch.is_expired)
        self.assertFalse(batch.is_available)
