#import all models so SQLAlchemy registers them in Base.metadata

from cart_engine.data.models.cart import CartModel
from cart_engine.data.models.cart_item import CartItemModel

__all__ = ["CartModel", "CartItemModel"]
