"""
Material Service - material registry, valuation and reconciliation
"""
import logging
from typing import Dict, Any, List
from decimal import Decimal
from django.db import transaction
from django.db.models import F, Q, Sum, DecimalField, Value
from django.db.models.functions import Coalesce

from stock.models import Material, StockAlert, StockBatch, StockSettings
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, BusinessRuleError, round_decimal, to_decimal
)
from stock.services.batch_service import StockBatchService

logger = logging.getLogger(__name__)


class MaterialService(BaseService):
    model = Material

    EDITABLE_FIELDS = {
        "name", "sku", "stock_unit", "recipe_unit", "conversion_rate",
        "minimum_stock_level", "maximum_stock_level", "reorder_point", "reorder_quantity",
        "purchase_price", "is_perishable", "shelf_life_days", "is_active",
    }
    DECIMAL_FIELDS = {
        "conversion_rate", "minimum_stock_level", "maximum_stock_level",
        "reorder_point", "reorder_quantity", "purchase_price",
    }

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, material: Material, include_batches: bool = False) -> Dict[str, Any]:
        data = {
            "id": material.id,
            "uuid": str(material.uuid),
            "name": material.name,
            "sku": material.sku,
            "stock_unit": material.stock_unit,
            "recipe_unit": material.recipe_unit,
            "conversion_rate": str(material.conversion_rate),
            "quantity": str(material.quantity),
            "minimum_stock_level": str(material.minimum_stock_level),
            "maximum_stock_level": str(material.maximum_stock_level),
            "reorder_point": str(material.reorder_point),
            "reorder_quantity": str(material.reorder_quantity),
            "purchase_price": str(material.purchase_price),
            "is_perishable": material.is_perishable,
            "shelf_life_days": material.shelf_life_days,
            "is_active": material.is_active,
            "needs_reorder": material.quantity <= material.reorder_point,
            "stock_value": str(StockBatchService.valuation(material.id)),
        }

        if include_batches:
            data["batches"] = [
                StockBatchService.serialize(b)
                for b in StockBatchService.available_batches(material.id)
            ]

        return data

    # ==================== CRUD ====================

    @classmethod
    def _clean(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(data) - cls.EDITABLE_FIELDS
        if "quantity" in unknown:
            raise BusinessRuleError(
                "Quantity is derived from batches; use a receipt or an adjustment",
                "quantity_is_derived",
            )
        if unknown:
            raise ValidationError(f"Unknown field(s): {sorted(unknown)}")

        cleaned = dict(data)
        for field in cls.DECIMAL_FIELDS & set(cleaned):
            value = to_decimal(cleaned[field], default=None)
            if value is None or value < 0:
                raise ValidationError(f"{field} must be a non-negative number", field)
            cleaned[field] = value

        if "conversion_rate" in cleaned and cleaned["conversion_rate"] == 0:
            raise ValidationError("conversion_rate must be positive", "conversion_rate")

        if "name" in cleaned and not str(cleaned["name"]).strip():
            raise ValidationError("Name is required", "name")

        return cleaned

    @classmethod
    @transaction.atomic
    def create(cls, name: str, **fields) -> Material:
        cleaned = cls._clean({"name": name, **fields})
        material = cls.model.objects.create(**cleaned)
        logger.info(f"Created material #{material.id} {material.name}")
        return material

    @classmethod
    @transaction.atomic
    def update(cls, material_id: int, **fields) -> Material:
        cleaned = cls._clean(fields)
        cls.get_or_404(material_id)
        material = cls.model.objects.select_for_update().get(id=material_id)
        for field, value in cleaned.items():
            setattr(material, field, value)
        material.save()
        return material

    @classmethod
    def get(cls, material_id: int) -> Dict[str, Any]:
        return success_response({"material": cls.serialize(cls.get_or_404(material_id), include_batches=True)})

    @classmethod
    def list(cls,
             search: str = None,
             low_stock_only: bool = False,
             out_of_stock_only: bool = False,
             is_active: bool = True,
             page: int = 1,
             per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)

        if search:
            queryset = queryset.filter(Q(name__icontains=search) | Q(sku__icontains=search))

        if out_of_stock_only:
            queryset = queryset.filter(quantity__lte=0)
        elif low_stock_only:
            queryset = queryset.filter(quantity__lte=F("minimum_stock_level"))

        materials, pagination = paginate_queryset(queryset.order_by("name"), page, per_page)
        return success_response({
            "materials": [cls.serialize(m) for m in materials],
            "pagination": pagination,
        })

    # ==================== VALUATION & REPORTING ====================

    @classmethod
    def stock_value(cls, material_id: int = None) -> Decimal:
        """FIFO value of stock on hand for one material, or all of them"""
        if material_id:
            cls.get_or_404(material_id)
        return StockBatchService.valuation(material_id)

    @classmethod
    def inventory_summary(cls) -> Dict[str, Any]:
        settings = StockSettings.load()
        materials = cls.model.objects.filter(is_active=True)

        return {
            "total_materials": materials.count(),
            "low_stock_count": materials.filter(
                quantity__gt=0, quantity__lte=F("minimum_stock_level")
            ).count(),
            "out_of_stock_count": materials.filter(quantity__lte=0).count(),
            "unresolved_alerts": StockAlert.objects.filter(is_resolved=False).count(),
            "critical_alerts": StockAlert.objects.filter(
                is_resolved=False, alert_type__in=StockAlert.CRITICAL_TYPES
            ).count(),
            "expiring_batches": StockBatch.objects.with_stock()
            .expiring_within(settings.expiry_warning_days)
            .count(),
            "total_stock_value": str(cls.stock_value()),
        }

    @classmethod
    def reconcile(cls) -> List[Dict[str, Any]]:
        """
        Materials whose on-hand quantity disagrees with their batches.

        An empty list means every material satisfies
        ``quantity == Σ remaining_quantity``.
        """
        zero = Value(Decimal("0"), output_field=DecimalField(max_digits=15, decimal_places=4))
        rows = (
            cls.model.objects
            .annotate(batch_total=Coalesce(Sum("batches__remaining_quantity"), zero))
            .exclude(quantity=F("batch_total"))
            .values("id", "name", "quantity", "batch_total")
        )

        mismatches = [
            {
                "material_id": row["id"],
                "name": row["name"],
                "quantity": str(row["quantity"]),
                "batch_total": str(row["batch_total"]),
                "difference": str(round_decimal(row["quantity"] - row["batch_total"])),
            }
            for row in rows
        ]
        for row in mismatches:
            logger.error(
                f"Material #{row['material_id']} {row['name']} out of balance: "
                f"quantity {row['quantity']} vs batches {row['batch_total']}"
            )
        return mismatches
