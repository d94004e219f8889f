from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import (
    RangeDateFilter,
    RangeDateTimeFilter,
    RangeNumericFilter,
)
from .models import (
    Supplier, Material, MaterialReceipt, StockBatch, InventoryTransaction,
    StockAlert, Recipe, RecipeMaterial, RecipeCostCalculation, StockSettings,
)
from .services import (
    ServiceError, StockAlertService, StockBatchService, RecipeCostService,
)


class ReadOnlyAdminMixin:
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class StockBatchInline(ReadOnlyAdminMixin, TabularInline):
    model = StockBatch
    extra = 0
    fields = ('batch_number', 'received_date', 'expiry_date', 'quantity', 'remaining_quantity', 'unit_cost')
    readonly_fields = fields
    ordering = ('received_date', 'id')
    show_change_link = True


class RecipeMaterialInline(TabularInline):
    model = RecipeMaterial
    extra = 1
    fields = ('material', 'quantity', 'sort_order')
    autocomplete_fields = ('material',)


@admin.register(Supplier)
class SupplierAdmin(ModelAdmin):
    list_display = ['name', 'contact_person', 'phone', 'email', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'contact_person', 'email']


@admin.register(Material)
class MaterialAdmin(ModelAdmin):
    list_display = ['name', 'sku', 'quantity_display', 'minimum_stock_level',
                    'purchase_price', 'stock_state', 'is_active']
    list_filter = [
        'is_active',
        'is_perishable',
        ('quantity', RangeNumericFilter),
    ]
    search_fields = ['name', 'sku']
    list_filter_submit = True
    inlines = [StockBatchInline]
    readonly_fields = ['quantity', 'created_at', 'updated_at']

    fieldsets = (
        (_('Material'), {
            'fields': ('name', 'sku', 'is_active')
        }),
        (_('Units'), {
            'fields': ('stock_unit', 'recipe_unit', 'conversion_rate')
        }),
        (_('Stock'), {
            'fields': ('quantity', 'minimum_stock_level', 'maximum_stock_level',
                       'reorder_point', 'reorder_quantity', 'purchase_price')
        }),
        (_('Perishability'), {
            'fields': ('is_perishable', 'shelf_life_days')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at')
        }),
    )

    @display(description=_("On Hand"), ordering='quantity')
    def quantity_display(self, obj):
        return f"{obj.quantity.normalize():f} {obj.stock_unit}"

    @display(
        description=_("State"),
        label={"Out of stock": "danger", "Low": "warning", "Overstock": "info", "OK": "success"},
    )
    def stock_state(self, obj):
        if obj.quantity <= 0:
            return "Out of stock"
        if obj.quantity <= obj.minimum_stock_level:
            return "Low"
        if obj.maximum_stock_level > 0 and obj.quantity > obj.maximum_stock_level:
            return "Overstock"
        return "OK"


@admin.register(MaterialReceipt)
class MaterialReceiptAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ['receipt_code', 'material', 'supplier', 'quantity_received', 'unit_cost', 'received_at']
    list_filter = [
        ('received_at', RangeDateTimeFilter),
        'supplier',
    ]
    search_fields = ['receipt_code', 'material__name']
    list_filter_submit = True


@admin.register(StockBatch)
class StockBatchAdmin(ModelAdmin):
    list_display = ['batch_number', 'material', 'received_date', 'expiry_date',
                    'quantity', 'remaining_quantity', 'unit_cost', 'usage_display']
    list_filter = [
        ('received_date', RangeDateFilter),
        ('expiry_date', RangeDateFilter),
        'material',
    ]
    search_fields = ['batch_number', 'material__name']
    list_filter_submit = True
    list_fullwidth = True
    actions = ['delete_untouched_batches']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def get_actions(self, request):
        actions = super().get_actions(request)
        actions.pop('delete_selected', None)
        return actions

    def has_delete_permission(self, request, obj=None):
        return False

    @display(description=_("Used"))
    def usage_display(self, obj):
        return f"{obj.usage_percentage}%"

    @admin.action(description=_("Delete selected untouched batches"))
    def delete_untouched_batches(self, request, queryset):
        deleted = 0
        for batch in queryset:
            try:
                StockBatchService.delete_batch(batch.id, actor_id=request.user.id)
            except ServiceError as e:
                self.message_user(request, e.message, level=messages.ERROR)
                continue
            deleted += 1
        self.message_user(request, _("%d batch(es) deleted") % deleted, level=messages.SUCCESS)


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ['created_at', 'material', 'type_badge', 'quantity', 'unit_cost',
                    'total_cost', 'reference_display', 'user']
    list_filter = [
        'transaction_type',
        ('created_at', RangeDateTimeFilter),
        'material',
    ]
    search_fields = ['material__name', 'notes', 'reference_type']
    list_filter_submit = True
    list_fullwidth = True

    @display(
        description=_("Type"),
        label={"receipt": "success", "consumption": "warning", "adjustment": "info"},
    )
    def type_badge(self, obj):
        return obj.transaction_type

    @display(description=_("Reference"))
    def reference_display(self, obj):
        if not obj.reference_type:
            return "-"
        return f"{obj.reference_type}#{obj.reference_id}"


@admin.register(StockAlert)
class StockAlertAdmin(ModelAdmin):
    list_display = ['material', 'alert_badge', 'current_value', 'threshold_value',
                    'message', 'is_resolved', 'created_at']
    list_filter = [
        'is_resolved',
        'alert_type',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['material__name', 'message']
    list_filter_submit = True
    list_fullwidth = True
    readonly_fields = ['material', 'alert_type', 'threshold_value', 'current_value', 'message',
                       'is_resolved', 'resolved_at', 'resolved_by', 'created_at', 'updated_at']
    actions = ['resolve_alerts', 'unresolve_alerts']

    def has_add_permission(self, request):
        return False

    @display(
        description=_("Alert"),
        label={
            "out_of_stock": "danger",
            "expiry_critical": "danger",
            "low_stock": "warning",
            "expiry_warning": "warning",
            "overstock": "info",
        },
    )
    def alert_badge(self, obj):
        return obj.alert_type

    @admin.action(description=_("Resolve selected alerts"))
    def resolve_alerts(self, request, queryset):
        count = StockAlertService.resolve_many(list(queryset.values_list('id', flat=True)), request.user.id)
        self.message_user(request, _("%d alert(s) resolved") % count, level=messages.SUCCESS)

    @admin.action(description=_("Reopen selected alerts"))
    def unresolve_alerts(self, request, queryset):
        for alert in queryset.filter(is_resolved=True):
            try:
                StockAlertService.unresolve(alert.id)
            except ServiceError as e:
                self.message_user(request, f"{alert}: {e.message}", level=messages.ERROR)


@admin.register(Recipe)
class RecipeAdmin(ModelAdmin):
    list_display = ['name', 'product', 'serving_size', 'latest_cost', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'product__name']
    inlines = [RecipeMaterialInline]
    actions = ['recalculate_costs']

    @display(description=_("Latest Cost / Serving"))
    def latest_cost(self, obj):
        latest = RecipeCostService.get_latest(obj.id)
        return f"{latest.cost_per_serving:.2f}" if latest else "-"

    @admin.action(description=_("Recalculate cost (FIFO)"))
    def recalculate_costs(self, request, queryset):
        for recipe in queryset:
            RecipeCostService.calculate(recipe.id, actor_id=request.user.id)
        self.message_user(request, _("%d recipe cost(s) recalculated") % queryset.count(), level=messages.SUCCESS)


@admin.register(RecipeCostCalculation)
class RecipeCostCalculationAdmin(ReadOnlyAdminMixin, ModelAdmin):
    list_display = ['recipe', 'calculation_date', 'calculation_method', 'total_cost',
                    'cost_per_serving', 'calculated_by']
    list_filter = [
        'calculation_method',
        ('calculation_date', RangeDateTimeFilter),
    ]
    search_fields = ['recipe__name']
    list_filter_submit = True


@admin.register(StockSettings)
class StockSettingsAdmin(ModelAdmin):
    list_display = ['__str__', 'stock_enabled', 'auto_deduct_on_completion', 'updated_at']

    def has_add_permission(self, request):
        return not StockSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
