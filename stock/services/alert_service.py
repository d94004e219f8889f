"""
Stock Alert Service - stock health rules with one open alert per material and type
"""
import logging
from typing import Dict, Any, List, Optional
from decimal import Decimal
from datetime import date
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from stock.models import Material, StockAlert, StockBatch, StockSettings
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError
)
from stock.signals import stock_alert_raised, send_on_commit

logger = logging.getLogger(__name__)


class StockAlertService(BaseService):
    model = StockAlert

    AlertType = StockAlert.AlertType

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, alert: StockAlert) -> Dict[str, Any]:
        return {
            "id": alert.id,
            "uuid": str(alert.uuid),
            "material_id": alert.material_id,
            "material_name": alert.material.name,
            "alert_type": alert.alert_type,
            "alert_type_display": alert.get_alert_type_display(),
            "threshold_value": str(alert.threshold_value),
            "current_value": str(alert.current_value),
            "message": alert.message,
            "priority": alert.priority,
            "is_critical": alert.is_critical,
            "is_resolved": alert.is_resolved,
            "resolved_at": alert.resolved_at.isoformat() if alert.resolved_at else None,
            "resolved_by_id": alert.resolved_by_id,
            "created_at": alert.created_at.isoformat(),
            "updated_at": alert.updated_at.isoformat(),
        }

    # ==================== EVALUATION ====================

    @classmethod
    def ensure_alert(cls,
                     material: Material,
                     alert_type: str,
                     threshold_value,
                     current_value,
                     message: str) -> StockAlert:
        """
        Update the open alert for (material, alert_type) in place, or open one.

        Callers hold the material row lock, so two evaluations of the same
        material cannot both insert. The partial unique constraint backs this up.
        """
        alert = cls.model.objects.filter(
            material=material, alert_type=alert_type, is_resolved=False
        ).first()

        created = alert is None
        if created:
            alert = cls.model.objects.create(
                material=material,
                alert_type=alert_type,
                threshold_value=threshold_value,
                current_value=current_value,
                message=message,
            )
            logger.info(f"Stock alert raised: {message}")
        else:
            alert.threshold_value = threshold_value
            alert.current_value = current_value
            alert.message = message
            alert.save(update_fields=["threshold_value", "current_value", "message", "updated_at"])

        send_on_commit(stock_alert_raised, StockAlert, alert=alert, created=created)
        return alert

    @classmethod
    def _quantity_alert(cls, material: Material) -> Optional[StockAlert]:
        quantity = material.quantity

        if quantity <= 0:
            return cls.ensure_alert(
                material, cls.AlertType.OUT_OF_STOCK, Decimal("0"), quantity,
                f"Out of stock: {material.name} is completely out of stock",
            )
        if quantity <= material.minimum_stock_level:
            return cls.ensure_alert(
                material, cls.AlertType.LOW_STOCK, material.minimum_stock_level, quantity,
                f"Low stock alert: {material.name} is below minimum level "
                f"({quantity} < {material.minimum_stock_level})",
            )
        if material.maximum_stock_level > 0 and quantity > material.maximum_stock_level:
            return cls.ensure_alert(
                material, cls.AlertType.OVERSTOCK, material.maximum_stock_level, quantity,
                f"Overstock alert: {material.name} exceeds maximum level "
                f"({quantity} > {material.maximum_stock_level})",
            )
        return None

    @classmethod
    def _expiry_alerts(cls, material: Material, settings: StockSettings, today: date) -> List[StockAlert]:
        batches = (
            StockBatch.objects.for_material(material.id)
            .with_stock()
            .expiring_within(settings.expiry_warning_days, today)
            .order_by("-expiry_date", "-id")
        )

        # Soonest-expiring batch is evaluated last and wins the open alert text
        latest_by_type = {}
        for batch in batches:
            days = (batch.expiry_date - today).days
            if days <= settings.expiry_critical_days:
                latest_by_type[cls.AlertType.EXPIRY_CRITICAL] = (batch, days)
            else:
                latest_by_type[cls.AlertType.EXPIRY_WARNING] = (batch, days)

        alerts = []
        for alert_type, (batch, days) in latest_by_type.items():
            if alert_type == cls.AlertType.EXPIRY_CRITICAL:
                threshold = settings.expiry_critical_days
                message = f"CRITICAL: {material.name} batch {batch.batch_number} expires in {days} days"
            else:
                threshold = settings.expiry_warning_days
                message = f"Expiry warning: {material.name} batch {batch.batch_number} expires in {days} days"
            alerts.append(cls.ensure_alert(material, alert_type, Decimal(threshold), Decimal(days), message))
        return alerts

    @classmethod
    @transaction.atomic
    def check_material(cls, material_id: int, expiry_only: bool = False, today: date = None) -> List[StockAlert]:
        """
        Re-evaluate one material and return the alerts it currently triggers.

        Quantity rules are exclusive and tried in order: out of stock, low
        stock, overstock. Expiry rules look at batches with stock that expire
        within the warning window. Alerts are never resolved here.
        """
        try:
            material = Material.objects.select_for_update().get(id=material_id)
        except Material.DoesNotExist:
            raise NotFoundError("Material", material_id)

        settings = StockSettings.load()
        today = today or timezone.localdate()
        alerts = []

        if settings.low_stock_alert_enabled and not expiry_only:
            alert = cls._quantity_alert(material)
            if alert:
                alerts.append(alert)

        if settings.expiry_alert_enabled:
            alerts.extend(cls._expiry_alerts(material, settings, today))

        return alerts

    @classmethod
    def check_all(cls, expiry_only: bool = False, today: date = None) -> Dict[str, Any]:
        """Evaluate every active material, each in its own transaction"""
        materials_checked = 0
        alerts = []

        for material_id in Material.objects.filter(is_active=True).values_list("id", flat=True):
            alerts.extend(cls.check_material(material_id, expiry_only=expiry_only, today=today))
            materials_checked += 1

        by_type = {}
        for alert in alerts:
            key = str(alert.alert_type)
            by_type[key] = by_type.get(key, 0) + 1

        logger.info(f"Checked {materials_checked} material(s), {len(alerts)} alert(s) active")
        return success_response({
            "materials_checked": materials_checked,
            "alerts_triggered": len(alerts),
            "by_type": by_type,
        }, f"Checked {materials_checked} material(s)")

    @classmethod
    def check_expiring_batches(cls, today: date = None) -> Dict[str, Any]:
        settings = StockSettings.load()
        today = today or timezone.localdate()
        material_ids = (
            StockBatch.objects.with_stock()
            .expiring_within(settings.expiry_warning_days, today)
            .values_list("material_id", flat=True)
            .distinct()
        )

        alerts = []
        for material_id in material_ids:
            alerts.extend(cls.check_material(material_id, expiry_only=True, today=today))

        return success_response({
            "alerts_triggered": len(alerts),
            "critical": sum(1 for a in alerts if a.alert_type == cls.AlertType.EXPIRY_CRITICAL),
        }, f"{len(alerts)} expiry alert(s) active")

    # ==================== RESOLUTION ====================

    @classmethod
    @transaction.atomic
    def resolve(cls, alert_id: int, actor_id: int = None) -> StockAlert:
        alert = cls.get_or_404(alert_id)
        if alert.is_resolved:
            raise BusinessRuleError("Alert is already resolved", "alert_already_resolved")

        alert.is_resolved = True
        alert.resolved_at = timezone.now()
        alert.resolved_by_id = actor_id
        alert.save(update_fields=["is_resolved", "resolved_at", "resolved_by", "updated_at"])

        logger.info(f"Alert #{alert.id} ({alert.alert_type}) resolved by user {actor_id}")
        return alert

    @classmethod
    @transaction.atomic
    def unresolve(cls, alert_id: int) -> StockAlert:
        alert = cls.get_or_404(alert_id)
        Material.objects.select_for_update().get(id=alert.material_id)

        if not alert.is_resolved:
            return alert

        if cls.model.objects.filter(
            material_id=alert.material_id, alert_type=alert.alert_type, is_resolved=False
        ).exists():
            raise BusinessRuleError(
                "An open alert of this type already exists for this material",
                "duplicate_open_alert",
            )

        alert.is_resolved = False
        alert.resolved_at = None
        alert.resolved_by = None
        alert.save(update_fields=["is_resolved", "resolved_at", "resolved_by", "updated_at"])
        return alert

    @classmethod
    @transaction.atomic
    def resolve_many(cls, alert_ids: List[int], actor_id: int = None) -> int:
        return cls.model.objects.filter(id__in=alert_ids, is_resolved=False).update(
            is_resolved=True,
            resolved_at=timezone.now(),
            resolved_by_id=actor_id,
            updated_at=timezone.now(),
        )

    # ==================== QUERIES ====================

    @classmethod
    def get_unresolved(cls, material_id: int = None, alert_type: str = None):
        queryset = cls.model.objects.filter(is_resolved=False).select_related("material")
        if material_id:
            queryset = queryset.filter(material_id=material_id)
        if alert_type:
            queryset = queryset.filter(alert_type=alert_type)
        return queryset

    @classmethod
    def list(cls,
             material_id: int = None,
             alert_type: str = None,
             is_resolved: bool = None,
             critical_only: bool = False,
             page: int = 1,
             per_page: int = 50) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("material")

        if material_id:
            queryset = queryset.filter(material_id=material_id)

        if alert_type:
            valid = [c[0] for c in StockAlert.AlertType.choices]
            if alert_type not in valid:
                raise ValidationError(f"Invalid alert type. Valid: {valid}", "alert_type")
            queryset = queryset.filter(alert_type=alert_type)

        if is_resolved is not None:
            queryset = queryset.filter(is_resolved=is_resolved)

        if critical_only:
            queryset = queryset.filter(alert_type__in=StockAlert.CRITICAL_TYPES)

        alerts, pagination = paginate_queryset(queryset.order_by("-created_at", "-id"), page, per_page)
        return success_response({
            "alerts": [cls.serialize(a) for a in alerts],
            "pagination": pagination,
        })

    @classmethod
    def summary(cls) -> Dict[str, Any]:
        counts = cls.model.objects.aggregate(
            unresolved=Count("id", filter=Q(is_resolved=False)),
            critical=Count("id", filter=Q(is_resolved=False, alert_type__in=StockAlert.CRITICAL_TYPES)),
            resolved=Count("id", filter=Q(is_resolved=True)),
        )
        by_type = dict(
            cls.model.objects.filter(is_resolved=False)
            .order_by()
            .values_list("alert_type")
            .annotate(n=Count("id"))
        )
        return {
            "unresolved": counts["unresolved"],
            "critical": counts["critical"],
            "resolved": counts["resolved"],
            "by_type": {c[0]: by_type.get(c[0], 0) for c in StockAlert.AlertType.choices},
        }
