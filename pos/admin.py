from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import (
    RangeDateTimeFilter,
    RangeNumericFilter,
)
from .models import Product, Order, OrderItem
from .services import OrderService


class OrderItemInline(TabularInline):
    model = OrderItem
    extra = 0
    fields = ('product', 'quantity', 'price', 'subtotal')
    readonly_fields = ('subtotal',)

    @display(description=_("Subtotal"))
    def subtotal(self, obj):
        if obj.pk:
            return f"{obj.price * obj.quantity:.2f}"
        return "-"


@admin.register(Product)
class ProductAdmin(ModelAdmin):
    list_display = ['name', 'price_display', 'has_recipe', 'status_badge', 'created_at']
    list_filter = [
        'is_active',
        ('price', RangeNumericFilter),
    ]
    search_fields = ['name', 'description']
    list_filter_submit = True
    readonly_fields = ['created_at', 'updated_at']

    @display(description=_("Price"), ordering='price')
    def price_display(self, obj):
        return f"{obj.price:.2f}"

    @display(description=_("Recipe"), boolean=True)
    def has_recipe(self, obj):
        return hasattr(obj, 'recipe')

    @display(description=_("Status"), label={"Active": "success", "Inactive": "danger"})
    def status_badge(self, obj):
        return "Active" if obj.is_active else "Inactive"


@admin.register(Order)
class OrderAdmin(ModelAdmin):
    list_display = ['code', 'user', 'status_badge', 'total_amount_display',
                    'items_count', 'inventory_processed_at', 'created_at']
    list_filter = [
        'status',
        ('created_at', RangeDateTimeFilter),
        ('total_amount', RangeNumericFilter),
    ]
    search_fields = ['code', 'user__username']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [OrderItemInline]
    actions = ['complete_orders']
    readonly_fields = ['status', 'created_at', 'updated_at', 'completed_at', 'inventory_processed_at']

    fieldsets = (
        (_('Order Information'), {
            'fields': ('code', 'user', 'status')
        }),
        (_('Financial'), {
            'fields': ('total_amount',)
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at', 'completed_at', 'inventory_processed_at')
        }),
    )

    @display(
        description=_("Status"),
        label={
            Order.Status.PENDING.value: 'info',
            Order.Status.PREPARING.value: 'warning',
            Order.Status.READY.value: 'warning',
            Order.Status.COMPLETED.value: 'success',
            Order.Status.CANCELED.value: 'danger',
        },
    )
    def status_badge(self, obj):
        return obj.status

    @display(description=_("Total"), ordering='total_amount')
    def total_amount_display(self, obj):
        return f"{obj.total_amount:.2f}"

    @display(description=_("Items"))
    def items_count(self, obj):
        return obj.items.count()

    @admin.action(description=_("Complete selected orders and draw stock"))
    def complete_orders(self, request, queryset):
        completed = 0
        for order in queryset.exclude(status__in=[Order.Status.COMPLETED, Order.Status.CANCELED]):
            result = OrderService.update_status(order.id, Order.Status.COMPLETED, actor_id=request.user.id)
            if not result['success']:
                self.message_user(request, f"{order.code}: {result['message']}", level=messages.ERROR)
                continue
            completed += 1
            if not result['inventory']['success']:
                self.message_user(request, f"{order.code}: {result['message']}", level=messages.WARNING)
        self.message_user(request, _("%d order(s) completed") % completed, level=messages.SUCCESS)
