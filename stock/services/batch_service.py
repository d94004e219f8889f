"""
Stock Batch Service - cost-bearing batches, FIFO selection and expiry tracking
"""
import logging
from typing import Dict, Any, Optional, List
from decimal import Decimal
from datetime import date
from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone

from stock.models import (
    Material, MaterialReceipt, StockBatch, StockSettings, Supplier
)
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    NotFoundError, InsufficientBatchQuantityError, BatchDeletionConflictError,
    positive_decimal, round_decimal, to_decimal
)
from stock.services.transaction_service import InventoryTransactionService

logger = logging.getLogger(__name__)


class StockBatchService(BaseService):
    """Manage stock batches"""

    model = StockBatch

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, batch: StockBatch) -> Dict[str, Any]:
        return {
            "id": batch.id,
            "uuid": str(batch.uuid),
            "batch_number": batch.batch_number,

            "material_id": batch.material_id,
            "material_name": batch.material.name,
            "unit": batch.material.stock_unit,

            "quantity": str(batch.quantity),
            "remaining_quantity": str(batch.remaining_quantity),
            "consumed_quantity": str(batch.consumed_quantity),
            "usage_percentage": str(batch.usage_percentage),

            "unit_cost": str(batch.unit_cost),
            "total_value": str(round_decimal(batch.total_value)),

            "received_date": batch.received_date.isoformat(),
            "expiry_date": batch.expiry_date.isoformat() if batch.expiry_date else None,
            "days_until_expiry": batch.days_until_expiry,
            "is_expired": batch.is_expired,
            "is_available": batch.is_available,
            "is_fully_consumed": batch.is_fully_consumed,

            "supplier_id": batch.supplier_id,
            "supplier_name": batch.supplier.name if batch.supplier else None,
            "material_receipt_id": batch.material_receipt_id,
            "created_at": batch.created_at.isoformat(),
        }

    # ==================== FIFO SELECTION ====================

    @classmethod
    def available_batches(cls, material_id: int, lock: bool = False, today: date = None) -> List[StockBatch]:
        """
        Batches that can be drawn from, oldest first.

        Ordered by received date, then by id so that same-day receipts are
        consumed in the order they were recorded. With ``lock=True`` the rows
        are locked until the surrounding transaction ends.
        """
        queryset = cls.model.objects.for_material(material_id).available(today).fifo_order()
        if lock:
            queryset = queryset.select_for_update()
        return list(queryset)

    @classmethod
    def available_quantity(cls, material_id: int, today: date = None) -> Decimal:
        total = (
            cls.model.objects.for_material(material_id)
            .available(today)
            .aggregate(total=Sum("remaining_quantity"))["total"]
        )
        return total or Decimal("0")

    @classmethod
    def remaining_total(cls, material_id: int) -> Decimal:
        """Sum of remaining quantity over every batch, expired ones included."""
        total = (
            cls.model.objects.for_material(material_id)
            .aggregate(total=Sum("remaining_quantity"))["total"]
        )
        return total or Decimal("0")

    # ==================== MUTATIONS ====================

    @classmethod
    def next_batch_number(cls, material: Material, on_date: date = None, adjustment: bool = False) -> str:
        prefix = material.batch_prefix
        if adjustment:
            prefix = f"ADJ-{prefix}"
        date_part = (on_date or timezone.localdate()).strftime("%Y%m%d")
        stem = f"{prefix}-{date_part}-"

        # Suffixes grow past 999, so compare them as numbers
        numbers = cls.model.objects.filter(
            material=material, batch_number__startswith=stem
        ).values_list("batch_number", flat=True)
        suffixes = [int(n[len(stem):]) for n in numbers if n[len(stem):].isdigit()]
        seq = max(suffixes, default=0) + 1

        return f"{stem}{seq:03d}"

    @classmethod
    def create_batch(cls,
                     material: Material,
                     quantity,
                     unit_cost,
                     received_date: date = None,
                     expiry_date: date = None,
                     supplier: Optional[Supplier] = None,
                     material_receipt: Optional[MaterialReceipt] = None,
                     batch_number: str = None,
                     adjustment: bool = False) -> StockBatch:
        """
        Persist a new batch with ``remaining_quantity == quantity``.

        Does not touch ``Material.quantity``; callers hold the material lock
        and update the material and ledger in the same transaction.
        """
        quantity = positive_decimal(quantity)
        received_date = received_date or timezone.localdate()

        batch = cls.model.objects.create(
            material=material,
            batch_number=batch_number or cls.next_batch_number(material, received_date, adjustment),
            quantity=quantity,
            remaining_quantity=quantity,
            unit_cost=to_decimal(unit_cost),
            received_date=received_date,
            expiry_date=expiry_date,
            supplier=supplier,
            material_receipt=material_receipt,
        )
        logger.debug(f"Created batch {batch.batch_number} ({quantity} {material.stock_unit} @ {batch.unit_cost})")
        return batch

    @classmethod
    def decrement(cls, batch: StockBatch, amount: Decimal) -> StockBatch:
        """
        Reduce a batch's remaining quantity by ``amount``.

        The update only applies while the row still holds at least ``amount``,
        so two writers racing on the same batch cannot both succeed.
        """
        amount = positive_decimal(amount, "amount")
        updated = cls.model.objects.filter(
            id=batch.id,
            remaining_quantity__gte=amount,
        ).update(remaining_quantity=F("remaining_quantity") - amount)

        if not updated:
            current = cls.model.objects.filter(id=batch.id).values_list("remaining_quantity", flat=True).first()
            raise InsufficientBatchQuantityError(batch.batch_number, amount, current)

        batch.refresh_from_db(fields=["remaining_quantity"])
        return batch

    @classmethod
    @transaction.atomic
    def delete_batch(cls, batch_id: int, actor_id: int = None) -> Dict[str, Any]:
        """
        Delete a batch that has never been drawn from.

        The material's on-hand quantity is reduced by the batch quantity and a
        negative adjustment is written to the ledger.
        """
        batch = cls.get_or_404(batch_id)
        material = Material.objects.select_for_update().get(id=batch.material_id)
        batch.refresh_from_db()

        if not batch.is_untouched:
            raise BatchDeletionConflictError(batch.batch_number, batch.consumed_quantity)

        batch_number = batch.batch_number
        quantity = batch.quantity
        receipt = batch.material_receipt

        batch.delete()
        if receipt is not None:
            receipt.delete()

        material.quantity = F("quantity") - quantity
        material.save(update_fields=["quantity", "updated_at"])
        material.refresh_from_db(fields=["quantity"])

        InventoryTransactionService.record(
            material=material,
            transaction_type="adjustment",
            quantity=-quantity,
            unit_cost=batch.unit_cost,
            actor_id=actor_id,
            reference_type="stock.stockbatch",
            reference_id=batch_id,
            notes=f"Deleted batch {batch_number}",
        )

        logger.info(f"Deleted untouched batch {batch_number} ({quantity} {material.stock_unit} of {material.name})")
        return success_response({
            "batch_number": batch_number,
            "material_quantity": str(material.quantity),
        }, f"Batch {batch_number} deleted")

    @classmethod
    def delete_receipt(cls, receipt_id: int, actor_id: int = None) -> Dict[str, Any]:
        """Delete a receipt together with its batch, under the same rule."""
        try:
            receipt = MaterialReceipt.objects.select_related("batch").get(id=receipt_id)
        except MaterialReceipt.DoesNotExist:
            raise NotFoundError("MaterialReceipt", receipt_id)

        batch = getattr(receipt, "batch", None)
        if batch is None:
            receipt.delete()
            return success_response({"receipt_code": receipt.receipt_code}, "Receipt deleted")

        result = cls.delete_batch(batch.id, actor_id=actor_id)
        result["receipt_code"] = receipt.receipt_code
        return result

    # ==================== LIST & REPORTING ====================

    @classmethod
    def get(cls, batch_id: int) -> Dict[str, Any]:
        return success_response({"batch": cls.serialize(cls.get_or_404(batch_id))})

    @classmethod
    def list(cls,
             material_id: int = None,
             has_stock_only: bool = True,
             expired_only: bool = False,
             expiring_within_days: int = None,
             page: int = 1,
             per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("material", "supplier")

        if material_id:
            queryset = queryset.for_material(material_id)

        if has_stock_only:
            queryset = queryset.with_stock()

        if expired_only:
            queryset = queryset.expired()
        elif expiring_within_days:
            queryset = queryset.expiring_within(expiring_within_days)

        batches, pagination = paginate_queryset(queryset.fifo_order(), page, per_page)

        return success_response({
            "batches": [cls.serialize(b) for b in batches],
            "pagination": pagination,
        })

    @classmethod
    def get_expiring_batches(cls, days: int = None) -> Dict[str, Any]:
        """Batches with stock left that expire within ``days`` (default from settings)"""
        days = days or StockSettings.load().expiry_warning_days

        batches = list(
            cls.model.objects.select_related("material", "supplier")
            .with_stock()
            .expiring_within(days)
            .order_by("expiry_date", "id")
        )

        return success_response({
            "days": days,
            "count": len(batches),
            "total_value": str(round_decimal(sum((b.total_value for b in batches), Decimal("0")))),
            "batches": [cls.serialize(b) for b in batches],
        })

    @classmethod
    def get_expired_batches(cls) -> Dict[str, Any]:
        batches = list(
            cls.model.objects.select_related("material", "supplier")
            .with_stock()
            .expired()
            .order_by("expiry_date", "id")
        )
        total_value = sum((b.total_value for b in batches), Decimal("0"))

        return success_response({
            "count": len(batches),
            "total_value": str(round_decimal(total_value)),
            "batches": [cls.serialize(b) for b in batches],
        })

    @classmethod
    def valuation(cls, material_id: int = None) -> Decimal:
        """Σ remaining × unit cost over batches with stock, expired ones included."""
        queryset = cls.model.objects.with_stock()
        if material_id:
            queryset = queryset.for_material(material_id)
        total = queryset.aggregate(total=Sum(F("remaining_quantity") * F("unit_cost")))["total"]
        return round_decimal(total or Decimal("0"))
