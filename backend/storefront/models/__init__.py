# Import models here so metadata.create_all sees every table.
from storefront.models.user import User  # noqa: F401
from storefront.models.user_role import UserRole  # noqa: F401

# Catalog, cart and orders
from storefront.models.category import Category  # noqa: F401
from storefront.models.product import Product  # noqa: F401
from storefront.models.cart_item import CartItem  # noqa: F401
from storefront.models.order import Order, OrderItem  # noqa: F401
