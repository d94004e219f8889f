"""
Inventory Service - receipts, manual adjustments and consumption as single units of work

Every entry point here locks the material row, changes batches and
``Material.quantity`` together, writes exactly one ledger row and
re-evaluates alerts, all inside one transaction.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from decimal import Decimal
from datetime import date, datetime
from django.db import transaction
from django.db.models import F, Model
from django.utils import timezone

from stock.models import (
    InventoryTransaction, Material, MaterialReceipt, StockBatch, Supplier
)
from stock.services.base_service import (
    NotFoundError, ValidationError, generate_number, positive_decimal,
    round_decimal, to_decimal
)
from stock.services.alert_service import StockAlertService
from stock.services.batch_service import StockBatchService
from stock.services.consumption_service import ConsumptionService, ConsumptionResult
from stock.services.transaction_service import InventoryTransactionService

logger = logging.getLogger(__name__)


@dataclass
class ReceiptResult:
    receipt: MaterialReceipt
    batch: StockBatch
    transaction: InventoryTransaction
    material: Material


@dataclass
class AdjustmentResult:
    material: Material
    transaction: InventoryTransaction
    batch: Optional[StockBatch] = None
    consumption: Optional[ConsumptionResult] = None


class InventoryService:

    @classmethod
    def lock_material(cls, material_id: int) -> Material:
        try:
            return Material.objects.select_for_update().get(id=material_id)
        except Material.DoesNotExist:
            raise NotFoundError("Material", material_id)

    @classmethod
    def _change_quantity(cls, material: Material, delta: Decimal) -> Material:
        Material.objects.filter(id=material.id).update(
            quantity=F("quantity") + delta, updated_at=timezone.now()
        )
        material.refresh_from_db(fields=["quantity", "updated_at"])
        return material

    @classmethod
    @transaction.atomic
    def receive(cls,
                material_id: int,
                quantity,
                unit_cost,
                received_at: datetime = None,
                expiry_date: date = None,
                supplier_id: int = None,
                actor_id: int = None,
                notes: str = "") -> ReceiptResult:
        """
        Book goods in: one receipt, one new batch, one ``receipt`` ledger row.
        """
        quantity = positive_decimal(quantity)
        unit_cost = to_decimal(unit_cost, default=None)
        if unit_cost is None or unit_cost < 0:
            raise ValidationError("Unit cost cannot be negative", "unit_cost")

        material = cls.lock_material(material_id)

        supplier = None
        if supplier_id:
            try:
                supplier = Supplier.objects.get(id=supplier_id)
            except Supplier.DoesNotExist:
                raise NotFoundError("Supplier", supplier_id)

        received_at = received_at or timezone.now()
        received_date = timezone.localtime(received_at).date() if timezone.is_aware(received_at) else received_at.date()
        if expiry_date and expiry_date < received_date:
            raise ValidationError("Expiry date cannot be before the receipt date", "expiry_date")

        receipt = MaterialReceipt.objects.create(
            receipt_code=generate_number("RCV", MaterialReceipt, "receipt_code"),
            material=material,
            supplier=supplier,
            quantity_received=quantity,
            unit_cost=unit_cost,
            received_at=received_at,
            expiry_date=expiry_date,
            received_by_id=actor_id,
            notes=notes or "",
        )

        batch = StockBatchService.create_batch(
            material=material,
            quantity=quantity,
            unit_cost=unit_cost,
            received_date=received_date,
            expiry_date=expiry_date,
            supplier=supplier,
            material_receipt=receipt,
        )

        cls._change_quantity(material, quantity)

        txn = InventoryTransactionService.record(
            material=material,
            transaction_type=InventoryTransaction.TransactionType.RECEIPT,
            quantity=quantity,
            unit_cost=unit_cost,
            actor_id=actor_id,
            reference=receipt,
            notes=f"Material receipt: {receipt.receipt_code}",
        )

        StockAlertService.check_material(material.id)

        logger.info(
            f"Received {quantity} {material.stock_unit} of {material.name} @ {unit_cost} "
            f"({receipt.receipt_code}, batch {batch.batch_number})"
        )
        return ReceiptResult(receipt=receipt, batch=batch, transaction=txn, material=material)

    @classmethod
    @transaction.atomic
    def consume(cls,
                material_id: int,
                quantity,
                actor_id: int = None,
                reference: Model = None,
                notes: str = "",
                check_alerts: bool = True,
                today: date = None) -> Tuple[ConsumptionResult, InventoryTransaction]:
        """
        FIFO draw-down plus the matching quantity decrement and ``consumption`` row.

        Raises InsufficientStockError with nothing changed when available
        stock does not cover ``quantity``.
        """
        quantity = positive_decimal(quantity)
        material = cls.lock_material(material_id)

        result = ConsumptionService.consume(material.id, quantity, today=today)
        cls._change_quantity(material, -result.total_consumed)

        txn = InventoryTransactionService.record(
            material=material,
            transaction_type=InventoryTransaction.TransactionType.CONSUMPTION,
            quantity=-result.total_consumed,
            unit_cost=result.total_cost / result.total_consumed,
            total_cost=result.total_cost,
            actor_id=actor_id,
            reference=reference,
            notes=notes,
        )

        if check_alerts:
            StockAlertService.check_material(material.id)

        return result, txn

    @classmethod
    @transaction.atomic
    def adjust_stock(cls,
                     material_id: int,
                     quantity,
                     reason: str = "",
                     actor_id: int = None) -> AdjustmentResult:
        """
        Manual correction. A positive quantity opens an ``ADJ-`` batch at the
        material's purchase price; a negative one is drawn FIFO like any
        consumption. Either way a single ``adjustment`` row is written.
        """
        quantity = to_decimal(quantity)
        if quantity == 0:
            raise ValidationError("Adjustment quantity cannot be zero", "quantity")

        material = cls.lock_material(material_id)
        batch = None
        consumption = None

        if quantity > 0:
            batch = StockBatchService.create_batch(
                material=material,
                quantity=quantity,
                unit_cost=material.purchase_price,
                adjustment=True,
            )
            unit_cost = material.purchase_price
            total_cost = quantity * unit_cost
        else:
            consumption = ConsumptionService.consume(material.id, -quantity)
            unit_cost = consumption.average_unit_cost
            total_cost = consumption.total_cost

        cls._change_quantity(material, quantity)

        txn = InventoryTransactionService.record(
            material=material,
            transaction_type=InventoryTransaction.TransactionType.ADJUSTMENT,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            actor_id=actor_id,
            reference=batch,
            notes=reason,
        )

        StockAlertService.check_material(material.id)

        logger.info(
            f"Adjusted {material.name} by {quantity:+} {material.stock_unit}"
            f" (now {material.quantity}): {reason or 'no reason given'}"
        )
        return AdjustmentResult(material=material, transaction=txn, batch=batch, consumption=consumption)

    @classmethod
    def quote(cls, material_id: int, quantity) -> dict:
        """FIFO cost of ``quantity`` at current batch levels, nothing written."""
        result = ConsumptionService.price_only(material_id, quantity)
        data = result.to_dict()
        data["total_cost"] = str(round_decimal(result.total_cost, 2))
        return data
