from typing import Dict, Any
from django.db import transaction

from stock.models import StockSettings
from stock.services.base_service import (
    BaseService, success_response, ValidationError
)


class StockSettingsService(BaseService):
    model = StockSettings

    BOOLEAN_FIELDS = {
        "stock_enabled",
        "auto_deduct_on_completion",
        "refresh_recipe_costs_on_completion",
        "low_stock_alert_enabled",
        "expiry_alert_enabled",
    }
    DAY_FIELDS = {
        "expiry_warning_days",
        "expiry_critical_days",
        "recipe_cost_max_age_days",
    }

    @classmethod
    def load(cls) -> StockSettings:
        return StockSettings.load()

    @classmethod
    def is_enabled(cls) -> bool:
        """Check if stock system is enabled"""
        return cls.load().stock_enabled

    @classmethod
    def should_deduct_on_completion(cls) -> bool:
        settings = cls.load()
        return settings.stock_enabled and settings.auto_deduct_on_completion

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        settings = cls.load()

        return {
            "stock_enabled": settings.stock_enabled,
            "auto_deduct_on_completion": settings.auto_deduct_on_completion,
            "refresh_recipe_costs_on_completion": settings.refresh_recipe_costs_on_completion,

            "low_stock_alert_enabled": settings.low_stock_alert_enabled,
            "expiry_alert_enabled": settings.expiry_alert_enabled,
            "expiry_warning_days": settings.expiry_warning_days,
            "expiry_critical_days": settings.expiry_critical_days,

            "recipe_cost_max_age_days": settings.recipe_cost_max_age_days,
        }

    @classmethod
    @transaction.atomic
    def update(cls, **kwargs) -> Dict[str, Any]:
        settings = cls.load()

        unknown = set(kwargs) - cls.BOOLEAN_FIELDS - cls.DAY_FIELDS
        if unknown:
            raise ValidationError(f"Unknown setting(s): {sorted(unknown)}")

        for field in cls.DAY_FIELDS & set(kwargs):
            value = kwargs[field]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValidationError(f"{field} must be a positive whole number of days", field)

        warning = kwargs.get("expiry_warning_days", settings.expiry_warning_days)
        critical = kwargs.get("expiry_critical_days", settings.expiry_critical_days)
        if critical > warning:
            raise ValidationError(
                "expiry_critical_days cannot exceed expiry_warning_days", "expiry_critical_days"
            )

        updated = []
        for field, value in kwargs.items():
            if field in cls.BOOLEAN_FIELDS:
                value = bool(value)
            setattr(settings, field, value)
            updated.append(field)

        if updated:
            settings.save()

        return success_response({
            "updated_fields": updated,
            "settings": cls.get_all()
        }, f"Updated {len(updated)} setting(s)")

    @classmethod
    @transaction.atomic
    def toggle_stock(cls, enabled: bool) -> Dict[str, Any]:
        settings = cls.load()
        settings.stock_enabled = enabled
        settings.save(update_fields=["stock_enabled", "updated_at"])

        return success_response({
            "stock_enabled": enabled
        }, f"Stock system {'enabled' if enabled else 'disabled'}")
