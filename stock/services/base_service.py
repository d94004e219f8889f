from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, timedelta
from django.db.models import Model
from django.utils import timezone


class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule})


class InsufficientStockError(ServiceError):
    """Available (non-expired) stock does not cover the requested quantity."""

    def __init__(self, item_name: str, required: Decimal, available: Decimal, unit: str = ""):
        self.item_name = item_name
        self.required = required
        self.available = available
        self.shortfall = required - available
        self.unit = unit
        amount = f"{self.shortfall} {unit}" if unit else f"{self.shortfall}"
        super().__init__(
            f"Insufficient stock for {item_name}. "
            f"Need {amount} more (required {required}, available {available})",
            "INSUFFICIENT_STOCK",
            {
                "item": item_name,
                "required": str(required),
                "available": str(available),
                "shortfall": str(self.shortfall),
                "unit": unit,
            }
        )


class InsufficientBatchQuantityError(ServiceError):
    def __init__(self, batch_number: str, requested: Decimal, remaining: Decimal = None):
        super().__init__(
            f"Batch {batch_number} cannot supply {requested}",
            "INSUFFICIENT_BATCH_QUANTITY",
            {
                "batch_number": batch_number,
                "requested": str(requested),
                "remaining": str(remaining) if remaining is not None else None,
            }
        )


class BatchDeletionConflictError(ServiceError):
    def __init__(self, batch_number: str, consumed: Decimal):
        super().__init__(
            f"Batch {batch_number} has already been partially consumed ({consumed}) and cannot be deleted",
            "BATCH_DELETION_CONFLICT",
            {"batch_number": batch_number, "consumed": str(consumed)}
        )


class OrderConsumptionError(ServiceError):
    """Raised after an order has been processed when one or more items failed."""

    def __init__(self, order_id: int, errors: List[Dict], result=None):
        self.order_id = order_id
        self.errors = errors
        self.result = result
        super().__init__(
            f"Order {order_id}: {len(errors)} item(s) could not be drawn from stock",
            "ORDER_CONSUMPTION_FAILED",
            {"order_id": order_id, "errors": errors}
        )


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def error_response(message: str, code: str = "ERROR", details: Dict = None) -> Dict:
    return {
        "success": False,
        "message": message,
        "error_code": code,
        "details": details or {}
    }


def service_error_response(error: ServiceError) -> Dict:
    return error_response(error.message, error.code, error.details)


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), 100)

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def round_decimal(value: Decimal, places: int = 4) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def positive_decimal(value: Any, field: str = "quantity") -> Decimal:
    amount = to_decimal(value, default=None)
    if amount is None or amount <= 0:
        raise ValidationError(f"{field.replace('_', ' ').capitalize()} must be positive", field)
    return amount


def generate_number(prefix: str, model_class: Model, field: str, width: int = 4) -> str:
    """
    Next ``PREFIX-YYYYMMDD-NNNN`` for today, continuing from the highest
    existing sequence under the same prefix and day.
    """
    date_part = timezone.localdate().strftime("%Y%m%d")
    stem = f"{prefix}-{date_part}-"
    filter_kwargs = {f"{field}__startswith": stem}
    last = model_class.objects.filter(**filter_kwargs).order_by(f"-{field}").first()

    seq = 1
    if last:
        tail = getattr(last, field)[len(stem):]
        if tail.isdigit():
            seq = int(tail) + 1

    return f"{stem}{seq:0{width}d}"


def get_date_range(period: str) -> Tuple[date, date]:
    today = timezone.localdate()

    if period == "today":
        return today, today
    elif period == "yesterday":
        return today - timedelta(days=1), today - timedelta(days=1)
    elif period == "this_week":
        start = today - timedelta(days=today.weekday())
        return start, today
    elif period == "this_month":
        return today.replace(day=1), today
    elif period == "last_month":
        first_of_month = today.replace(day=1)
        last_month_end = first_of_month - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    elif period.startswith("last_") and period.endswith("_days"):
        days = period.replace("last_", "").replace("_days", "")
        if days.isdigit():
            return today - timedelta(days=int(days)), today

    raise ValidationError(f"Unknown period: {period}", "period")


class BaseService:
    model = None

    @classmethod
    def get_by_id(cls, id: int) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except cls.model.DoesNotExist:
            return None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.model.__name__, id)
        return obj
