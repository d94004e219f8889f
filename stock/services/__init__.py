"""
Stock Services - FIFO inventory ledger and costing

Usage:
    from stock.services import InventoryService, RecipeCostService

    # Book goods in
    InventoryService.receive(material_id=1, quantity=50, unit_cost="2.00", actor_id=user.id)

    # Manual correction
    InventoryService.adjust_stock(material_id=1, quantity=-3, reason="Spillage", actor_id=user.id)

    # Snapshot a recipe's cost
    RecipeCostService.calculate(recipe_id=4, method="fifo", actor_id=user.id)
"""

# Base utilities
from stock.services.base_service import (
    ServiceError,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
    InsufficientStockError,
    InsufficientBatchQuantityError,
    BatchDeletionConflictError,
    OrderConsumptionError,
    success_response,
    error_response,
    service_error_response,
    paginate_queryset,
    to_decimal,
    round_decimal,
    generate_number,
    get_date_range,
    BaseService,
)
# Settings
from .settings_service import StockSettingsService

# Ledger core
from .transaction_service import InventoryTransactionService
from .batch_service import StockBatchService
from .consumption_service import (
    ConsumptionService,
    ConsumptionResult,
    BatchDraw,
)
from .alert_service import StockAlertService
from .inventory_service import (
    InventoryService,
    ReceiptResult,
    AdjustmentResult,
)
from .material_service import MaterialService

# Costing & orders
from .costing_service import RecipeCostService, CalculationMethod
from .order_service import (
    OrderConsumptionService,
    OrderStatusHandler,
    OrderConsumptionResult,
    ItemConsumption,
    MaterialConsumption,
)


__all__ = [
    # Errors
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BusinessRuleError",
    "InsufficientStockError",
    "InsufficientBatchQuantityError",
    "BatchDeletionConflictError",
    "OrderConsumptionError",

    # Utilities
    "success_response",
    "error_response",
    "service_error_response",
    "paginate_queryset",
    "to_decimal",
    "round_decimal",
    "generate_number",
    "get_date_range",
    "BaseService",

    # Services
    "StockSettingsService",
    "InventoryTransactionService",
    "StockBatchService",
    "ConsumptionService",
    "StockAlertService",
    "InventoryService",
    "MaterialService",
    "RecipeCostService",
    "OrderConsumptionService",
    "OrderStatusHandler",

    # Result types
    "ConsumptionResult",
    "BatchDraw",
    "ReceiptResult",
    "AdjustmentResult",
    "OrderConsumptionResult",
    "ItemConsumption",
    "MaterialConsumption",
    "CalculationMethod",
]
