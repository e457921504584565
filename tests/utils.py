from decimal import Decimal

from inventory.models import Category, Product
from sales.services import CartLine, create_sale
from sales.tenders import TenderSet


def make_product(name="Water Bottle", sku=None, retail_price="100.00", wholesale_price=None,
                 quantity=50, category=None):
    """Create a product with stock on hand for ledger tests."""
    if category is None:
        category, _ = Category.objects.get_or_create(name="Beverages")
    return Product.objects.create(
        name=name,
        sku=sku or name.upper().replace(" ", "-"),
        category=category,
        retail_price=Decimal(retail_price),
        wholesale_price=Decimal(wholesale_price) if wholesale_price else None,
        quantity=quantity,
    )


def checkout(product, quantity=1, cash="0.00", customer_id=None, staff_id="cashier-1", **kwargs):
    """Ring up ``quantity`` of ``product`` paying ``cash`` and return the sale."""
    result = create_sale(
        [CartLine(product_id=product.id, quantity=quantity)],
        staff_id=staff_id,
        tenders=TenderSet(cash=cash),
        customer_id=customer_id,
        **kwargs
    )
    return result.sale
