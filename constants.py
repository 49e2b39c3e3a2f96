# Order Status Constants
ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_APPROVED = "approved"
ORDER_STATUS_DECLINED = "declined"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_APPROVED,
    ORDER_STATUS_DECLINED,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)

# Allowed transitions (current -> next). Terminal statuses map to nothing.
ORDER_STATUS_TRANSITIONS = {
    ORDER_STATUS_PENDING: frozenset({ORDER_STATUS_APPROVED, ORDER_STATUS_DECLINED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_APPROVED: frozenset({ORDER_STATUS_PROCESSING, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_PROCESSING: frozenset({ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_DECLINED: frozenset(),
    ORDER_STATUS_COMPLETED: frozenset(),
    ORDER_STATUS_CANCELLED: frozenset(),
}

# Suppliers only drive production
SUPPLIER_STATUS_TRANSITIONS = {
    ORDER_STATUS_APPROVED: frozenset({ORDER_STATUS_PROCESSING}),
    ORDER_STATUS_PROCESSING: frozenset({ORDER_STATUS_COMPLETED}),
}

# Payment Status Constants (independent axis)
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_FAILED = "failed"

# Orders in these payment states may still be (re)submitted to checkout
CHECKOUT_OPEN_PAYMENT_STATUSES = frozenset({PAYMENT_STATUS_PENDING, PAYMENT_STATUS_FAILED})

# Roles
ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLE_SUPPLIER = "supplier"
ROLES = (ROLE_ADMIN, ROLE_USER, ROLE_SUPPLIER)

# Products
WRISTBAND_TYPES = ("tyvek", "vinyl", "silicone", "fabric")
DEFAULT_WRISTBAND_TYPE = "tyvek"
DEFAULT_WRISTBAND_COLOR = "#FFFFFF"

PRINT_TYPE_NONE = "none"
PRINT_TYPE_BLACK = "black"
PRINT_TYPE_FULL_COLOR = "full_color"
PRINT_TYPES = (PRINT_TYPE_NONE, PRINT_TYPE_BLACK, PRINT_TYPE_FULL_COLOR)

PRINT_TYPE_LABELS = {
    PRINT_TYPE_BLACK: "Black Print",
    PRINT_TYPE_FULL_COLOR: "Full Color Print",
}

# Currencies
CURRENCIES = ("EUR", "USD", "GBP")
DEFAULT_CURRENCY = "EUR"
CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£"}

# Default pricing (used when pricing_config has no row for the type/currency)
# 39 per 1000 bands base, 15 per 1000 bands per add-on, 19 flat express.
DEFAULT_MIN_QUANTITY = 1000
DEFAULT_BASE_PRICE = "0.039"
DEFAULT_BLACK_PRINT_EXTRA = "0"
DEFAULT_FULL_COLOR_PRINT_EXTRA = "0"
DEFAULT_TRADEMARK_FEE_PER_THOUSAND = "15"
DEFAULT_QR_CODE_FEE_PER_THOUSAND = "15"
DEFAULT_EXPRESS_DELIVERY_FEE = "19"

# Named extra charges stored on orders.extra_charges
EXTRA_TRADEMARK = "trademark"
EXTRA_QR_CODE = "qr_code"
EXTRA_EXPRESS = "express"

# Checkout
MAX_ORDERS_PER_CHECKOUT = 12  # order ids must fit in 500 chars of Stripe metadata
SHIPPING_ADDRESS_REQUIRED_FIELDS = ("name", "address", "city", "zipCode", "country")
SHIPPING_ADDRESS_FIELDS = SHIPPING_ADDRESS_REQUIRED_FIELDS + ("state", "phone")

# Notifications
NOTIFY_CONFIRMATION = "confirmation"
NOTIFY_ADMIN = "admin"
NOTIFY_SUPPLIER = "supplier"
NOTIFICATION_KINDS = (NOTIFY_CONFIRMATION, NOTIFY_ADMIN, NOTIFY_SUPPLIER)

ESTIMATED_DELIVERY_DAYS = 14

# Email verification links
VERIFICATION_LINK_TTL_HOURS = 24

# Design images
DESIGN_IMAGE_FORMATS = ("PNG", "JPEG", "WEBP")
DESIGN_IMAGE_MAX_PIXELS = 4096 * 4096
DESIGN_IMAGE_PREFIX = "designs"
