"""
Recipe Cost Service - prices recipes from current stock and keeps cost snapshots

Usage:
    from stock.services import RecipeCostService

    calc = RecipeCostService.calculate(recipe_id=3, method="fifo", actor_id=user.id)
    calc.cost_per_serving

    RecipeCostService.needs_recalculation(recipe_id=3)
"""
import logging
from typing import Dict, Any, List, Optional
from decimal import Decimal
from django.db import transaction
from django.utils import timezone
from datetime import timedelta

from stock.models import Recipe, RecipeCostCalculation, RecipeMaterial, StockSettings
from stock.services.base_service import (
    BaseService, success_response,
    ValidationError, NotFoundError, InsufficientStockError, round_decimal
)
from stock.services.consumption_service import ConsumptionService
from stock.signals import recipe_cost_updated, send_on_commit

logger = logging.getLogger(__name__)

CalculationMethod = RecipeCostCalculation.CalculationMethod

FIFO_FALLBACK_NOTE = "FIFO calculation failed, using average cost"


class RecipeCostService(BaseService):
    model = RecipeCostCalculation

    # ==================== PRICING ====================

    @classmethod
    def _method(cls, method) -> CalculationMethod:
        try:
            return CalculationMethod(method)
        except ValueError:
            valid = [c[0] for c in CalculationMethod.choices]
            raise ValidationError(f"Invalid calculation method. Valid: {valid}", "method")

    @classmethod
    def _price_line(cls, line: RecipeMaterial, method: CalculationMethod) -> Dict[str, Any]:
        material = line.material
        stock_quantity = line.stock_quantity

        entry = {
            "material_id": material.id,
            "material_name": material.name,
            "quantity": str(line.quantity),
            "recipe_unit": material.recipe_unit,
            "stock_quantity": str(stock_quantity),
            "unit": material.stock_unit,
        }

        if stock_quantity <= 0:
            # Rounds to zero at stock precision, so it costs nothing
            entry.update({
                "unit_cost": str(material.purchase_price),
                "total_cost": str(round_decimal(Decimal("0"))),
                "method": method.value,
            })
            return entry

        if method == CalculationMethod.FIFO:
            try:
                quote = ConsumptionService.price_only(material.id, stock_quantity)
            except InsufficientStockError as e:
                logger.info(f"FIFO pricing of {material.name} fell back to purchase price: {e.message}")
                total = stock_quantity * material.purchase_price
                entry.update({
                    "unit_cost": str(material.purchase_price),
                    "total_cost": str(round_decimal(total)),
                    "method": "average",
                    "note": FIFO_FALLBACK_NOTE,
                })
            else:
                entry.update({
                    "unit_cost": str(quote.average_unit_cost),
                    "total_cost": str(quote.total_cost),
                    "method": CalculationMethod.FIFO.value,
                    "batches": [b.to_dict() for b in quote.batches],
                })
        else:
            # average_cost has no separate running average; it prices like purchase_price
            total = stock_quantity * material.purchase_price
            entry.update({
                "unit_cost": str(material.purchase_price),
                "total_cost": str(round_decimal(total)),
                "method": method.value,
            })

        return entry

    @classmethod
    def price(cls, recipe: Recipe, method=CalculationMethod.FIFO) -> Dict[str, Any]:
        """Price a recipe without saving anything."""
        method = cls._method(method)
        lines = recipe.recipe_materials.select_related("material").all()

        breakdown = [cls._price_line(line, method) for line in lines]
        total_cost = round_decimal(sum((Decimal(b["total_cost"]) for b in breakdown), Decimal("0")))
        serving_size = recipe.serving_size or 1

        return {
            "recipe_id": recipe.id,
            "method": method.value,
            "total_cost": total_cost,
            "cost_per_serving": round_decimal(total_cost / serving_size),
            "breakdown": breakdown,
        }

    @classmethod
    @transaction.atomic
    def calculate(cls, recipe_id: int, method=CalculationMethod.FIFO, actor_id: int = None) -> RecipeCostCalculation:
        """Price a recipe and store the result as a new snapshot."""
        try:
            recipe = Recipe.objects.get(id=recipe_id)
        except Recipe.DoesNotExist:
            raise NotFoundError("Recipe", recipe_id)

        priced = cls.price(recipe, method)

        calculation = cls.model.objects.create(
            recipe=recipe,
            calculation_date=timezone.now(),
            total_cost=priced["total_cost"],
            cost_per_serving=priced["cost_per_serving"],
            calculation_method=priced["method"],
            cost_breakdown=priced["breakdown"],
            calculated_by_id=actor_id,
        )

        send_on_commit(recipe_cost_updated, RecipeCostCalculation, calculation=calculation)
        logger.info(
            f"Recipe {recipe.name} costed at {calculation.total_cost} "
            f"({calculation.cost_per_serving}/serving, {calculation.calculation_method})"
        )
        return calculation

    # ==================== SNAPSHOTS ====================

    @classmethod
    def serialize(cls, calculation: RecipeCostCalculation) -> Dict[str, Any]:
        return {
            "id": calculation.id,
            "uuid": str(calculation.uuid),
            "recipe_id": calculation.recipe_id,
            "recipe_name": calculation.recipe.name,
            "calculation_date": calculation.calculation_date.isoformat(),
            "calculation_method": calculation.calculation_method,
            "total_cost": str(calculation.total_cost),
            "cost_per_serving": str(calculation.cost_per_serving),
            "cost_breakdown": calculation.cost_breakdown,
            "calculated_by_id": calculation.calculated_by_id,
        }

    @classmethod
    def get_latest(cls, recipe_id: int) -> Optional[RecipeCostCalculation]:
        return (
            cls.model.objects.filter(recipe_id=recipe_id)
            .order_by("-calculation_date", "-id")
            .first()
        )

    @classmethod
    def needs_recalculation(cls, recipe_id: int, max_age_days: int = None) -> bool:
        if max_age_days is None:
            max_age_days = StockSettings.load().recipe_cost_max_age_days
        latest = cls.get_latest(recipe_id)
        return latest is None or latest.is_outdated(max_age_days)

    @classmethod
    def get_cost_trend(cls, recipe_id: int, days: int = 30) -> List[Dict[str, Any]]:
        since = timezone.now() - timedelta(days=days)
        calculations = cls.model.objects.filter(
            recipe_id=recipe_id, calculation_date__gte=since
        ).order_by("-calculation_date", "-id")

        return [
            {
                "date": c.calculation_date.date().isoformat(),
                "total_cost": str(c.total_cost),
                "cost_per_serving": str(c.cost_per_serving),
                "method": c.calculation_method,
            }
            for c in calculations
        ]

    @classmethod
    def most_expensive_line(cls, calculation: RecipeCostCalculation) -> Optional[Dict[str, Any]]:
        if not calculation.cost_breakdown:
            return None
        return max(calculation.cost_breakdown, key=lambda line: Decimal(line["total_cost"]))

    @classmethod
    def compare(cls, calculation: RecipeCostCalculation, baseline: RecipeCostCalculation) -> Dict[str, Any]:
        """Variance of ``calculation`` against an earlier ``baseline``"""
        variance = calculation.total_cost - baseline.total_cost
        percentage = Decimal("0")
        if baseline.total_cost > 0:
            percentage = round_decimal(variance / baseline.total_cost * 100, 2)

        return {
            "absolute_variance": str(variance),
            "percentage_variance": str(percentage),
            "is_increase": variance > 0,
            "comparison_date": baseline.calculation_date.isoformat(),
        }

    @classmethod
    def recalculate_stale(cls,
                          actor_id: int = None,
                          method=CalculationMethod.FIFO,
                          include_fresh: bool = False,
                          max_age_days: int = None) -> Dict[str, Any]:
        """Recompute every active recipe whose latest snapshot is missing or old"""
        method = cls._method(method)
        recalculated = []
        skipped = 0

        for recipe in Recipe.objects.filter(is_active=True).order_by("id"):
            if not include_fresh and not cls.needs_recalculation(recipe.id, max_age_days):
                skipped += 1
                continue
            calculation = cls.calculate(recipe.id, method, actor_id)
            recalculated.append({
                "recipe_id": recipe.id,
                "recipe_name": recipe.name,
                "total_cost": str(calculation.total_cost),
            })

        return success_response({
            "recalculated": recalculated,
            "skipped": skipped,
        }, f"Recalculated {len(recalculated)} recipe cost(s)")
