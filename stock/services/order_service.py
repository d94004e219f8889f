"""
Order Integration Service - draws stock for completed POS orders
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from decimal import Decimal
from django.db import transaction
from django.utils import timezone

from pos.models import Order, OrderItem
from stock.models import Recipe
from stock.services.base_service import (
    success_response, service_error_response,
    ServiceError, NotFoundError, OrderConsumptionError
)
from stock.services.alert_service import StockAlertService
from stock.services.costing_service import RecipeCostService, CalculationMethod
from stock.services.inventory_service import InventoryService
from stock.services.settings_service import StockSettingsService
from stock.signals import order_inventory_processed, send_on_commit

logger = logging.getLogger(__name__)


@dataclass
class MaterialConsumption:
    material_id: int
    material_name: str
    required: Decimal
    consumed: Decimal
    unit: str
    total_cost: Decimal
    transaction_id: int
    batches: List[Dict] = field(default_factory=list)

    def to_dict(self):
        return {
            "material_id": self.material_id,
            "material_name": self.material_name,
            "required": str(self.required),
            "consumed": str(self.consumed),
            "unit": self.unit,
            "total_cost": str(self.total_cost),
            "transaction_id": self.transaction_id,
            "batches": self.batches,
        }


@dataclass
class ItemConsumption:
    order_item_id: int
    product_id: int
    quantity: int
    recipe_id: Optional[int] = None
    ok: bool = True
    materials: List[MaterialConsumption] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def total_cost(self) -> Decimal:
        return sum((m.total_cost for m in self.materials), Decimal("0"))

    def to_dict(self):
        return {
            "order_item_id": self.order_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "recipe_id": self.recipe_id,
            "ok": self.ok,
            "total_cost": str(self.total_cost),
            "materials": [m.to_dict() for m in self.materials],
            "error": self.error,
        }


@dataclass
class OrderConsumptionResult:
    order_id: int
    items: List[ItemConsumption] = field(default_factory=list)
    errors: List[Dict] = field(default_factory=list)
    skipped: bool = False
    recalculated_recipe_ids: List[int] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return sum((i.total_cost for i in self.items), Decimal("0"))

    def to_dict(self):
        return {
            "order_id": self.order_id,
            "skipped": self.skipped,
            "total_cost": str(self.total_cost),
            "items": [i.to_dict() for i in self.items],
            "errors": self.errors,
            "recalculated_recipe_ids": self.recalculated_recipe_ids,
        }


class OrderConsumptionService:
    """
    Draws recipe materials from stock for every item of a completed order.

    Each item is its own unit of work: a failure on any of its materials
    rolls back that item only, is recorded, and the next item is processed.
    Items that succeeded stay committed.
    """

    @classmethod
    def _claim(cls, order_id: int) -> Optional[Order]:
        """Stamp the order as processed; None if it already was."""
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except Order.DoesNotExist:
                raise NotFoundError("Order", order_id)

            if order.inventory_processed_at is not None:
                return None

            order.inventory_processed_at = timezone.now()
            order.save(update_fields=["inventory_processed_at", "updated_at"])
            return order

    @classmethod
    def _recipe_for(cls, item: OrderItem) -> Optional[Recipe]:
        return (
            Recipe.objects.filter(product_id=item.product_id, is_active=True)
            .prefetch_related("recipe_materials__material")
            .first()
        )

    @classmethod
    def _consume_item(cls, order: Order, item: OrderItem, recipe: Recipe, actor_id: int) -> ItemConsumption:
        result = ItemConsumption(
            order_item_id=item.id,
            product_id=item.product_id,
            quantity=item.quantity,
            recipe_id=recipe.id,
        )

        with transaction.atomic():
            for line in recipe.recipe_materials.all():
                material = line.material
                required = material.to_stock_units(line.quantity * item.quantity)
                if required <= 0:
                    # Too small to register at stock precision
                    logger.debug(f"Order {order.code}: {material.name} rounds to zero, not drawn")
                    continue

                try:
                    consumption, txn = InventoryService.consume(
                        material.id,
                        required,
                        actor_id=actor_id,
                        reference=item,
                        notes=f"Order {order.code}: {item.quantity} x {item.product.name}",
                        check_alerts=False,
                    )
                except ServiceError as e:
                    e.details["material_id"] = material.id
                    e.details.setdefault("material", material.name)
                    raise

                result.materials.append(MaterialConsumption(
                    material_id=material.id,
                    material_name=material.name,
                    required=required,
                    consumed=consumption.total_consumed,
                    unit=material.stock_unit,
                    total_cost=consumption.total_cost,
                    transaction_id=txn.id,
                    batches=[b.to_dict() for b in consumption.batches],
                ))

        return result

    @classmethod
    def complete_order(cls, order_id: int, actor_id: int = None) -> OrderConsumptionResult:
        """
        Draw stock for an order exactly once.

        A second call for the same order is a no-op returning a result with
        ``skipped=True``. Raises OrderConsumptionError after all items have
        been attempted when any of them failed.
        """
        order = cls._claim(order_id)
        if order is None:
            logger.info(f"Order #{order_id} inventory already processed, skipping")
            return OrderConsumptionResult(order_id=order_id, skipped=True)

        result = OrderConsumptionResult(order_id=order.id)
        touched_materials = set()
        used_recipes = []

        items = order.items.select_related("product").order_by("id")
        for item in items:
            recipe = cls._recipe_for(item)
            if recipe is None:
                result.items.append(ItemConsumption(
                    order_item_id=item.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                ))
                continue

            if recipe.id not in used_recipes:
                used_recipes.append(recipe.id)

            try:
                item_result = cls._consume_item(order, item, recipe, actor_id)
            except ServiceError as e:
                error = {
                    "order_item_id": item.id,
                    "item": item.product.name,
                    "material_id": e.details.get("material_id"),
                    "material": e.details.get("material"),
                    "error": e.message,
                }
                result.errors.append(error)
                result.items.append(ItemConsumption(
                    order_item_id=item.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    recipe_id=recipe.id,
                    ok=False,
                    error=e.message,
                ))
                logger.warning(f"Order {order.code}: item #{item.id} ({item.product.name}) not drawn: {e.message}")
                continue

            result.items.append(item_result)
            touched_materials.update(m.material_id for m in item_result.materials)

        for material_id in sorted(touched_materials):
            StockAlertService.check_material(material_id)

        if StockSettingsService.load().refresh_recipe_costs_on_completion:
            for recipe_id in used_recipes:
                RecipeCostService.calculate(recipe_id, CalculationMethod.FIFO, actor_id)
                result.recalculated_recipe_ids.append(recipe_id)

        send_on_commit(order_inventory_processed, Order, order_id=order.id, result=result)
        logger.info(
            f"Order {order.code}: drew stock for {len(result.items) - len(result.errors)} of "
            f"{len(result.items)} item(s), cost {result.total_cost}"
        )

        if result.errors:
            raise OrderConsumptionError(order.id, result.errors, result)

        return result


class OrderStatusHandler:
    """
    Hook for order status changes.
    Call this from the order service after the new status is saved.
    """

    @classmethod
    def on_status_change(cls,
                         order_id: int,
                         old_status: str,
                         new_status: str,
                         actor_id: int = None) -> Dict[str, Any]:
        if new_status != Order.Status.COMPLETED or old_status == Order.Status.COMPLETED:
            return success_response({"skipped": True, "reason": "Not a completion"})

        if not StockSettingsService.should_deduct_on_completion():
            return success_response({"skipped": True, "reason": "Stock deduction disabled"})

        try:
            result = OrderConsumptionService.complete_order(order_id, actor_id)
        except OrderConsumptionError as e:
            response = service_error_response(e)
            response["result"] = e.result.to_dict() if e.result else None
            return response

        return success_response(result.to_dict(), "Order inventory processed")
