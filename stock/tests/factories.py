from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db.models import F
from django.utils import timezone

from pos.models import Order, OrderItem, Product
from stock.models import Material, Recipe, RecipeMaterial, StockBatch

_counter = {"order": 0}


def make_user(username="chef"):
    return get_user_model().objects.create_user(username=username, password="pass1234")


def make_material(name="Flour", **fields):
    defaults = {
        "stock_unit": "kg",
        "recipe_unit": "kg",
        "conversion_rate": Decimal("1"),
        "purchase_price": Decimal("2.00"),
        "minimum_stock_level": Decimal("0"),
    }
    defaults.update(fields)
    return Material.objects.create(name=name, **defaults)


def add_batch(material, quantity, unit_cost, days_ago=0, expiry_in_days=None, **fields):
    """
    Insert a batch directly and keep ``Material.quantity`` in step with it.
    """
    today = timezone.localdate()
    quantity = Decimal(str(quantity))
    batch = StockBatch.objects.create(
        material=material,
        batch_number=fields.pop("batch_number", None) or f"T{material.id:03d}-{StockBatch.objects.count() + 1:04d}",
        quantity=quantity,
        remaining_quantity=fields.pop("remaining_quantity", quantity),
        unit_cost=Decimal(str(unit_cost)),
        received_date=today - timedelta(days=days_ago),
        expiry_date=today + timedelta(days=expiry_in_days) if expiry_in_days is not None else None,
        **fields,
    )
    Material.objects.filter(id=material.id).update(quantity=F("quantity") + batch.remaining_quantity)
    material.refresh_from_db(fields=["quantity"])
    return batch


def make_recipe(name, lines, product=None, serving_size=1):
    recipe = Recipe.objects.create(name=name, product=product, serving_size=serving_size)
    for sort_order, (material, quantity) in enumerate(lines):
        RecipeMaterial.objects.create(
            recipe=recipe,
            material=material,
            quantity=Decimal(str(quantity)),
            sort_order=sort_order,
        )
    return recipe


def make_product(name="Bread", price="5.00"):
    return Product.objects.create(name=name, price=Decimal(price))


def make_order(items, status=Order.Status.PENDING, user=None):
    _counter["order"] += 1
    order = Order.objects.create(code=f"ORD-TEST-{_counter['order']:04d}", status=status, user=user)
    for product, quantity in items:
        OrderItem.objects.create(order=order, product=product, quantity=quantity, price=product.price)
    return order
