"""
Inventory Transaction Service - append-only stock movement ledger
"""
from typing import Dict, Any, Optional
from decimal import Decimal
from datetime import date, datetime, time
from django.db.models import Model, Sum
from django.utils import timezone

from stock.models import InventoryTransaction, Material
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, get_date_range, round_decimal, to_decimal
)


class InventoryTransactionService(BaseService):
    model = InventoryTransaction

    TYPES = [c[0] for c in InventoryTransaction.TransactionType.choices]

    @classmethod
    def serialize(cls, txn: InventoryTransaction) -> Dict[str, Any]:
        return {
            "id": txn.id,
            "uuid": str(txn.uuid),
            "material_id": txn.material_id,
            "material_name": txn.material.name,
            "unit": txn.material.stock_unit,
            "transaction_type": txn.transaction_type,
            "transaction_type_display": txn.get_transaction_type_display(),
            "quantity": str(txn.quantity),
            "unit_cost": str(txn.unit_cost),
            "total_cost": str(txn.total_cost),
            "remaining_quantity": str(txn.remaining_quantity) if txn.remaining_quantity is not None else None,
            "reference_type": txn.reference_type or None,
            "reference_id": txn.reference_id,
            "user_id": txn.user_id,
            "notes": txn.notes,
            "created_at": txn.created_at.isoformat(),
        }

    @classmethod
    def record(cls,
               material: Material,
               transaction_type: str,
               quantity,
               unit_cost=0,
               actor_id: int = None,
               reference: Optional[Model] = None,
               reference_type: str = "",
               reference_id: int = None,
               notes: str = "",
               total_cost=None) -> InventoryTransaction:
        """
        Append one ledger row.

        ``quantity`` is signed: positive for stock coming in, negative for
        stock going out. ``reference`` may be any saved model instance; its
        model label and pk become the polymorphic reference.
        Must be called inside the same transaction as the stock mutation.
        """
        if transaction_type not in cls.TYPES:
            raise ValidationError(f"Invalid transaction type. Valid: {cls.TYPES}", "transaction_type")

        quantity = to_decimal(quantity)
        if quantity == 0:
            raise ValidationError("Ledger quantity cannot be zero", "quantity")
        unit_cost = to_decimal(unit_cost)

        if reference is not None:
            reference_type = reference._meta.label_lower
            reference_id = reference.pk

        if total_cost is None:
            total_cost = abs(quantity) * unit_cost

        return cls.model.objects.create(
            material=material,
            transaction_type=transaction_type,
            quantity=quantity,
            unit_cost=round_decimal(unit_cost),
            total_cost=round_decimal(to_decimal(total_cost)),
            remaining_quantity=quantity if transaction_type == InventoryTransaction.TransactionType.RECEIPT else None,
            reference_type=reference_type or "",
            reference_id=reference_id,
            user_id=actor_id,
            notes=notes or "",
        )

    @classmethod
    def filtered(cls,
                 material_id: int = None,
                 transaction_type: str = None,
                 start_date: date = None,
                 end_date: date = None,
                 period: str = None,
                 actor_id: int = None,
                 reference_type: str = None):
        queryset = cls.model.objects.select_related("material")

        if material_id:
            queryset = queryset.filter(material_id=material_id)

        if transaction_type:
            if transaction_type not in cls.TYPES:
                raise ValidationError(f"Invalid transaction type. Valid: {cls.TYPES}", "transaction_type")
            queryset = queryset.filter(transaction_type=transaction_type)

        if period:
            start_date, end_date = get_date_range(period)

        tz = timezone.get_current_timezone()
        if start_date:
            queryset = queryset.filter(created_at__gte=timezone.make_aware(datetime.combine(start_date, time.min), tz))
        if end_date:
            queryset = queryset.filter(created_at__lte=timezone.make_aware(datetime.combine(end_date, time.max), tz))

        if actor_id:
            queryset = queryset.filter(user_id=actor_id)

        if reference_type:
            queryset = queryset.filter(reference_type=reference_type)

        return queryset.order_by("-created_at", "-id")

    @classmethod
    def list(cls, page: int = 1, per_page: int = 50, **filters) -> Dict[str, Any]:
        """Stock movements, newest first"""
        transactions, pagination = paginate_queryset(cls.filtered(**filters), page, per_page)

        return success_response({
            "transactions": [cls.serialize(t) for t in transactions],
            "pagination": pagination,
            "types": [
                {"value": c[0], "label": c[1]}
                for c in InventoryTransaction.TransactionType.choices
            ],
        })

    @classmethod
    def get_by_reference(cls, reference: Model = None, reference_type: str = None, reference_id: int = None):
        if reference is not None:
            reference_type = reference._meta.label_lower
            reference_id = reference.pk
        return cls.model.objects.filter(
            reference_type=reference_type, reference_id=reference_id
        ).select_related("material").order_by("id")

    @classmethod
    def totals(cls, **filters) -> Dict[str, Any]:
        """Quantity and cost totals per transaction type for the filtered rows"""
        rows = (
            cls.filtered(**filters)
            .order_by()
            .values("transaction_type")
            .annotate(quantity=Sum("quantity"), total_cost=Sum("total_cost"))
        )
        totals = {
            t: {"quantity": Decimal("0"), "total_cost": Decimal("0")}
            for t in cls.TYPES
        }
        for row in rows:
            totals[row["transaction_type"]] = {
                "quantity": row["quantity"] or Decimal("0"),
                "total_cost": row["total_cost"] or Decimal("0"),
            }
        return totals
