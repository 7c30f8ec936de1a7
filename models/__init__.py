# Import models so that SQLAlchemy metadata includes them on app startup
from .product import Product  # noqa: F401
from .product_variant import ProductVariant  # noqa: F401
from .inventory_log import InventoryLog, InventoryReason  # noqa: F401
from .order import Order, OrderStatus, PaymentStatus, OrderPriority, OrderSource  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .order_note import OrderNote  # noqa: F401
from .order_status_history import OrderStatusHistory  # noqa: F401
from .promo_modal import PromoModal  # noqa: F401
