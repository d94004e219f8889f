import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Sum, DecimalField
from django.db.models.functions import Coalesce
from django.utils import timezone

from pos.models import Order, OrderItem, Product
from stock.services.order_service import OrderStatusHandler

logger = logging.getLogger(__name__)


class OrderService:

    @staticmethod
    def _next_code():
        date_part = timezone.localdate().strftime('%Y%m%d')
        count = Order.objects.filter(code__startswith=f'ORD-{date_part}-').count()
        return f'ORD-{date_part}-{count + 1:04d}'

    @staticmethod
    @transaction.atomic
    def create_order(user_id, items, code=None):
        if not items:
            return {'success': False, 'message': 'Order must have at least one item'}

        order = Order.objects.create(
            code=code or OrderService._next_code(),
            user_id=user_id,
            status=Order.Status.PENDING,
        )

        for item_data in items:
            product_id = item_data.get('product_id')
            quantity = item_data.get('quantity', 1)

            if quantity <= 0:
                transaction.set_rollback(True)
                return {'success': False, 'message': 'Quantity must be greater than 0'}

            try:
                product = Product.objects.get(id=product_id, is_active=True)
            except Product.DoesNotExist:
                transaction.set_rollback(True)
                return {'success': False, 'message': f'Product with id {product_id} not found'}

            OrderItem.objects.create(
                order=order,
                product=product,
                quantity=quantity,
                price=product.price
            )

        OrderService._recalculate_order_total(order)

        return {
            'success': True,
            'order': order,
            'message': 'Order created successfully'
        }

    @staticmethod
    def update_status(order_id, status, actor_id=None):
        """
        Move an order to ``status``. Completing an order draws its stock once
        the status change has been committed.
        """
        if status not in Order.Status.values:
            return {'success': False, 'message': 'Invalid status'}

        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except Order.DoesNotExist:
                return {'success': False, 'message': 'Order not found'}

            old_status = order.status
            if old_status == status:
                return {'success': True, 'order': order, 'message': f'Order is already {status}'}

            if old_status in (Order.Status.COMPLETED, Order.Status.CANCELED):
                return {'success': False, 'message': f'Cannot change a {old_status} order'}

            order.status = status
            if status == Order.Status.COMPLETED:
                order.completed_at = timezone.now()
            order.save()

        logger.info(f'Order {order.code}: {old_status} -> {status}')

        inventory = OrderStatusHandler.on_status_change(order.id, old_status, status, actor_id)
        message = f'Order status updated to {status}'
        if not inventory['success']:
            message = f"{message}, but stock could not be drawn for every item"

        order.refresh_from_db()
        return {
            'success': True,
            'order': order,
            'inventory': inventory,
            'message': message
        }

    @staticmethod
    def _recalculate_order_total(order):
        total = order.items.aggregate(
            total=Coalesce(
                Sum(
                    F('price') * F('quantity'),
                    output_field=DecimalField(max_digits=12, decimal_places=2)
                ),
                Decimal('0.00')
            )
        )['total']

        order.total_amount = total
        order.save(update_fields=['total_amount'])
