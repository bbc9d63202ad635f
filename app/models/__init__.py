from app.models.user import User
from app.models.admin_user import AdminUser
from app.models.catalog import AdditionalService, Color, Product, ProductVariant, Size
from app.models.discount import DiscountCode, DiscountCodeUsage
from app.models.cart import CartItem, CartItemService, CartSession
from app.models.order import BillingAddress, Order, ShippingAddress
from app.models.order_item import OrderItem, OrderItemService
