"""
Consumption Service - FIFO draw-down of batches

Usage:
    from stock.services import ConsumptionService

    with transaction.atomic():
        result = ConsumptionService.consume(material_id=1, quantity=Decimal("4"))

    # Same walk, nothing written
    quote = ConsumptionService.price_only(material_id=1, quantity=Decimal("4"))
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import List, Iterable
from decimal import Decimal
from datetime import date
from django.db import transaction

from stock.models import Material, StockBatch
from stock.services.base_service import (
    NotFoundError, InsufficientStockError, positive_decimal, round_decimal
)
from stock.services.batch_service import StockBatchService

logger = logging.getLogger(__name__)


@dataclass
class BatchDraw:
    batch_id: int
    batch_number: str
    quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal

    def to_dict(self):
        return {k: str(v) if isinstance(v, Decimal) else v for k, v in asdict(self).items()}


@dataclass
class ConsumptionResult:
    material_id: int
    requested: Decimal
    total_consumed: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    unit: str = ""
    batches: List[BatchDraw] = field(default_factory=list)

    @property
    def average_unit_cost(self) -> Decimal:
        if not self.total_consumed:
            return Decimal("0")
        return round_decimal(self.total_cost / self.total_consumed)

    def to_dict(self):
        return {
            "material_id": self.material_id,
            "requested": str(self.requested),
            "total_consumed": str(self.total_consumed),
            "total_cost": str(self.total_cost),
            "average_unit_cost": str(self.average_unit_cost),
            "unit": self.unit,
            "batches": [b.to_dict() for b in self.batches],
        }


class ConsumptionService:
    """
    Turns a (material, quantity) request into a FIFO draw-down plan.

    Batches are drawn oldest first (received date, then id). The whole plan
    is built before anything is written; when available stock falls short
    InsufficientStockError is raised and no batch is touched.
    """

    @classmethod
    def _get_material(cls, material_id: int, lock: bool = False) -> Material:
        queryset = Material.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(id=material_id)
        except Material.DoesNotExist:
            raise NotFoundError("Material", material_id)

    @classmethod
    def plan(cls, material: Material, quantity: Decimal, batches: Iterable[StockBatch]) -> ConsumptionResult:
        result = ConsumptionResult(
            material_id=material.id,
            requested=quantity,
            unit=material.stock_unit,
        )
        remaining = quantity
        available = Decimal("0")

        for batch in batches:
            available += batch.remaining_quantity
            if remaining <= 0:
                continue

            take = min(remaining, batch.remaining_quantity)
            line_cost = take * batch.unit_cost
            result.batches.append(BatchDraw(
                batch_id=batch.id,
                batch_number=batch.batch_number,
                quantity=take,
                unit_cost=batch.unit_cost,
                line_cost=line_cost,
            ))
            result.total_consumed += take
            result.total_cost += line_cost
            remaining -= take

        if remaining > 0:
            logger.warning(
                f"Insufficient stock for {material.name}: required {quantity}, "
                f"available {available} {material.stock_unit}"
            )
            raise InsufficientStockError(material.name, quantity, available, material.stock_unit)

        result.total_cost = round_decimal(result.total_cost)
        return result

    @classmethod
    def price_only(cls, material_id: int, quantity, today: date = None) -> ConsumptionResult:
        """Price ``quantity`` against current batches without changing them."""
        quantity = positive_decimal(quantity)
        material = cls._get_material(material_id)
        batches = StockBatchService.available_batches(material.id, today=today)
        return cls.plan(material, quantity, batches)

    @classmethod
    @transaction.atomic
    def consume(cls, material_id: int, quantity, today: date = None) -> ConsumptionResult:
        """
        Draw ``quantity`` (stock units) from the material's batches.

        Only batch rows are changed. The caller updates ``Material.quantity``
        and writes the ledger row inside the same transaction; see
        ``InventoryService.consume`` for the complete unit of work.
        """
        quantity = positive_decimal(quantity)
        material = cls._get_material(material_id, lock=True)
        batches = StockBatchService.available_batches(material.id, lock=True, today=today)

        result = cls.plan(material, quantity, batches)

        by_id = {b.id: b for b in batches}
        for draw in result.batches:
            StockBatchService.decrement(by_id[draw.batch_id], draw.quantity)

        logger.debug(
            f"Consumed {result.total_consumed} {material.stock_unit} of {material.name} "
            f"from {len(result.batches)} batch(es), cost {result.total_cost}"
        )
        return result
