import uuid as uuid_lib
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Supplier(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=200)
    contact_person = models.CharField(max_length=100, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Material(models.Model):
    """
    A stock-keeping unit. ``quantity`` is denormalized and always equals the
    sum of ``remaining_quantity`` over the material's batches.
    """

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=50, unique=True, blank=True, null=True)

    stock_unit = models.CharField(max_length=20, default="kg")
    recipe_unit = models.CharField(max_length=20, default="kg")
    conversion_rate = models.DecimalField(
        max_digits=15,
        decimal_places=6,
        default=1,
        help_text="Multiply a quantity in recipe units by this factor to get stock units",
    )

    quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    # Stock thresholds
    minimum_stock_level = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    maximum_stock_level = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    reorder_point = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    reorder_quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    # Fallback unit cost, per stock unit
    purchase_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    is_perishable = models.BooleanField(default=False)
    shelf_life_days = models.PositiveIntegerField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def to_stock_units(self, recipe_quantity) -> Decimal:
        # Stock quantities are stored with 4 decimal places
        amount = Decimal(str(recipe_quantity)) * self.conversion_rate
        return amount.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)

    @property
    def batch_prefix(self) -> str:
        # e.g. "FLO001" for material #1 named "Flour"
        letters = "".join(ch for ch in self.name.upper() if ch.isalnum())[:3] or "MAT"
        return f"{letters}{self.id:03d}"


class MaterialReceipt(models.Model):
    """Goods received for a material. Each receipt creates exactly one batch."""

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    receipt_code = models.CharField(max_length=50, unique=True)
    material = models.ForeignKey(
        Material, on_delete=models.PROTECT, related_name="receipts"
    )
    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="receipts",
    )
    quantity_received = models.DecimalField(max_digits=15, decimal_places=4)
    unit_cost = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    received_at = models.DateTimeField(default=timezone.now)
    expiry_date = models.DateField(null=True, blank=True)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="material_receipts",
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-received_at"]

    def __str__(self):
        return f"{self.receipt_code} – {self.material.name} × {self.quantity_received}"


class StockBatchQuerySet(models.QuerySet):
    def for_material(self, material_id):
        return self.filter(material_id=material_id)

    def with_stock(self):
        return self.filter(remaining_quantity__gt=0)

    def not_expired(self, today=None):
        today = today or timezone.localdate()
        return self.filter(Q(expiry_date__isnull=True) | Q(expiry_date__gt=today))

    def available(self, today=None):
        return self.with_stock().not_expired(today)

    def expired(self, today=None):
        today = today or timezone.localdate()
        return self.filter(expiry_date__isnull=False, expiry_date__lte=today)

    def expiring_within(self, days: int, today=None):
        today = today or timezone.localdate()
        return self.filter(
            expiry_date__isnull=False,
            expiry_date__gt=today,
            expiry_date__lte=today + timedelta(days=days),
        )

    def fifo_order(self):
        return self.order_by("received_date", "id")


class StockBatch(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    batch_number = models.CharField(max_length=100, unique=True)
    material = models.ForeignKey(
        Material, on_delete=models.PROTECT, related_name="batches"
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    remaining_quantity = models.DecimalField(max_digits=15, decimal_places=4)
    unit_cost = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    received_date = models.DateField(default=timezone.localdate, db_index=True)
    expiry_date = models.DateField(null=True, blank=True, db_index=True)

    supplier = models.ForeignKey(
        Supplier,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="batches",
    )
    material_receipt = models.OneToOneField(
        MaterialReceipt,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="batch",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = StockBatchQuerySet.as_manager()

    class Meta:
        ordering = ["received_date", "id"]
        verbose_name_plural = "stock batches"
        constraints = [
            models.CheckConstraint(
                condition=Q(remaining_quantity__gte=0),
                name="stock_batch_remaining_not_negative",
            ),
            models.CheckConstraint(
                condition=Q(remaining_quantity__lte=F("quantity")),
                name="stock_batch_remaining_within_quantity",
            ),
        ]
        indexes = [
            models.Index(fields=["material", "received_date", "id"], name="stock_batch_fifo_idx"),
        ]

    def __str__(self):
        return f"Batch {self.batch_number} – {self.material.name}"

    @property
    def total_value(self) -> Decimal:
        return self.remaining_quantity * self.unit_cost

    @property
    def consumed_quantity(self) -> Decimal:
        return self.quantity - self.remaining_quantity

    @property
    def usage_percentage(self) -> Decimal:
        if not self.quantity:
            return Decimal("100")
        return round(self.consumed_quantity / self.quantity * 100, 2)

    @property
    def is_untouched(self) -> bool:
        return self.remaining_quantity == self.quantity

    @property
    def is_fully_consumed(self) -> bool:
        return self.remaining_quantity <= 0

    @property
    def is_expired(self) -> bool:
        return bool(self.expiry_date) and self.expiry_date <= timezone.localdate()

    @property
    def days_until_expiry(self):
        if not self.expiry_date:
            return None
        return (self.expiry_date - timezone.localdate()).days

    @property
    def is_available(self) -> bool:
        return self.remaining_quantity > 0 and not self.is_expired


class InventoryTransaction(models.Model):
    """Append-only ledger of quantity movements."""

    class TransactionType(models.TextChoices):
        RECEIPT = "receipt", "Receipt"
        CONSUMPTION = "consumption", "Consumption"
        ADJUSTMENT = "adjustment", "Adjustment"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    material = models.ForeignKey(
        Material, on_delete=models.PROTECT, related_name="transactions"
    )
    transaction_type = models.CharField(
        max_length=20, choices=TransactionType.choices, db_index=True
    )
    # Signed: positive for receipts/increases, negative for consumption/decreases
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    unit_cost = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    total_cost = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    # Legacy snapshot, only filled on receipt rows
    remaining_quantity = models.DecimalField(
        max_digits=15, decimal_places=4, null=True, blank=True
    )

    # Generic reference to source document
    reference_type = models.CharField(max_length=50, blank=True, default="")
    reference_id = models.PositiveBigIntegerField(null=True, blank=True)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_transactions",
    )
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["material", "created_at"], name="stock_txn_material_idx"),
            models.Index(fields=["transaction_type", "created_at"], name="stock_txn_type_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="stock_txn_reference_idx"),
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.quantity:+} {self.material.name}"


class StockAlert(models.Model):
    class AlertType(models.TextChoices):
        LOW_STOCK = "low_stock", "Low Stock"
        OUT_OF_STOCK = "out_of_stock", "Out of Stock"
        OVERSTOCK = "overstock", "Overstock"
        EXPIRY_WARNING = "expiry_warning", "Expiry Warning"
        EXPIRY_CRITICAL = "expiry_critical", "Expiry Critical"

    CRITICAL_TYPES = (AlertType.OUT_OF_STOCK, AlertType.EXPIRY_CRITICAL)
    EXPIRY_TYPES = (AlertType.EXPIRY_WARNING, AlertType.EXPIRY_CRITICAL)
    STOCK_TYPES = (AlertType.LOW_STOCK, AlertType.OUT_OF_STOCK, AlertType.OVERSTOCK)

    PRIORITIES = {
        AlertType.OUT_OF_STOCK.value: 5,
        AlertType.EXPIRY_CRITICAL.value: 4,
        AlertType.LOW_STOCK.value: 3,
        AlertType.EXPIRY_WARNING.value: 2,
        AlertType.OVERSTOCK.value: 1,
    }

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    material = models.ForeignKey(
        Material, on_delete=models.CASCADE, related_name="alerts"
    )
    alert_type = models.CharField(max_length=20, choices=AlertType.choices, db_index=True)
    threshold_value = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    current_value = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    message = models.TextField(blank=True, default="")

    is_resolved = models.BooleanField(default=False, db_index=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_stock_alerts",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["material", "alert_type"],
                condition=Q(is_resolved=False),
                name="uq_stock_alert_unresolved_material_type",
            )
        ]

    def __str__(self):
        return f"{self.get_alert_type_display()}: {self.material.name}"

    @property
    def is_critical(self) -> bool:
        return self.alert_type in self.CRITICAL_TYPES

    @property
    def is_expiry_related(self) -> bool:
        return self.alert_type in self.EXPIRY_TYPES

    @property
    def is_stock_related(self) -> bool:
        return self.alert_type in self.STOCK_TYPES

    @property
    def priority(self) -> int:
        return self.PRIORITIES.get(str(self.alert_type), 1)


class Recipe(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=200)
    product = models.OneToOneField(
        "pos.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recipe",
    )
    serving_size = models.PositiveIntegerField(default=1)
    instructions = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=Q(serving_size__gte=1),
                name="recipe_serving_size_positive",
            ),
        ]

    def __str__(self):
        return self.name


class RecipeMaterial(models.Model):
    recipe = models.ForeignKey(
        Recipe, on_delete=models.CASCADE, related_name="recipe_materials"
    )
    material = models.ForeignKey(
        Material, on_delete=models.PROTECT, related_name="recipe_materials"
    )
    # Always in the material's recipe unit
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "id"]
        unique_together = [("recipe", "material")]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="recipe_material_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.material.name} × {self.quantity} {self.material.recipe_unit}"

    @property
    def stock_quantity(self) -> Decimal:
        return self.material.to_stock_units(self.quantity)


class RecipeCostCalculation(models.Model):
    class CalculationMethod(models.TextChoices):
        FIFO = "fifo", "FIFO"
        PURCHASE_PRICE = "purchase_price", "Purchase Price"
        AVERAGE_COST = "average_cost", "Average Cost"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    recipe = models.ForeignKey(
        Recipe, on_delete=models.CASCADE, related_name="cost_calculations"
    )
    calculation_date = models.DateTimeField(default=timezone.now, db_index=True)
    total_cost = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    cost_per_serving = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    calculation_method = models.CharField(
        max_length=20, choices=CalculationMethod.choices, default=CalculationMethod.FIFO
    )
    cost_breakdown = models.JSONField(default=list, blank=True)
    calculated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recipe_cost_calculations",
    )

    class Meta:
        ordering = ["-calculation_date", "-id"]
        get_latest_by = ["calculation_date", "id"]

    def __str__(self):
        return f"{self.recipe.name} @ {self.calculation_date:%Y-%m-%d %H:%M} – {self.total_cost}"

    def is_outdated(self, days: int = 7) -> bool:
        return self.calculation_date < timezone.now() - timedelta(days=days)


class StockSettings(models.Model):
    """
    Singleton settings table. Use StockSettings.load() to get the instance.
    """

    # Master controls
    stock_enabled = models.BooleanField(default=True)
    auto_deduct_on_completion = models.BooleanField(default=True)
    refresh_recipe_costs_on_completion = models.BooleanField(default=True)

    # Alerts
    low_stock_alert_enabled = models.BooleanField(default=True)
    expiry_alert_enabled = models.BooleanField(default=True)
    expiry_warning_days = models.PositiveIntegerField(default=7)
    expiry_critical_days = models.PositiveIntegerField(default=2)

    # Costing
    recipe_cost_max_age_days = models.PositiveIntegerField(default=7)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "stock settings"
        verbose_name_plural = "stock settings"

    def save(self, *args, **kwargs):
        # Enforce singleton: always use pk=1
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj

    def __str__(self):
        return "Stock Settings"
