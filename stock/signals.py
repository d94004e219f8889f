"""
Stock signals. Sent only after the surrounding transaction commits, so
receivers (dashboards, notifications) never see rolled-back state.

    stock_alert_raised        sender=StockAlert, alert=<StockAlert>, created=<bool>
    order_inventory_processed sender=Order, order_id=<int>, result=<OrderConsumptionResult>
    recipe_cost_updated       sender=RecipeCostCalculation, calculation=<RecipeCostCalculation>
"""
from django.db import transaction
from django.dispatch import Signal

stock_alert_raised = Signal()
order_inventory_processed = Signal()
recipe_cost_updated = Signal()


def send_on_commit(signal: Signal, sender, **kwargs):
    transaction.on_commit(lambda: signal.send(sender=sender, **kwargs))
