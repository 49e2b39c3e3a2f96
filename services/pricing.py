"""
Wristband Pricing Calculator.

calculate_price() is pure: same inputs, same quote, no I/O. Rates come
from pricing_config via load_pricing_rates(), or the built-in defaults
when no row exists for the (wristband_type, currency) pair.

Totals are kept exact (4 decimal places) so that

    total_price == unit_price * quantity + sum(extra_charges)

holds without rounding drift. Conversion to minor units happens only at
the Stripe boundary (to_minor_units).
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from services.errors import ValidationError
from constants import (
    WRISTBAND_TYPES, CURRENCIES, DEFAULT_CURRENCY, PRINT_TYPES,
    PRINT_TYPE_NONE, PRINT_TYPE_BLACK, PRINT_TYPE_FULL_COLOR,
    DEFAULT_MIN_QUANTITY, DEFAULT_BASE_PRICE, DEFAULT_BLACK_PRINT_EXTRA,
    DEFAULT_FULL_COLOR_PRINT_EXTRA, DEFAULT_TRADEMARK_FEE_PER_THOUSAND,
    DEFAULT_QR_CODE_FEE_PER_THOUSAND, DEFAULT_EXPRESS_DELIVERY_FEE,
    EXTRA_TRADEMARK, EXTRA_QR_CODE, EXTRA_EXPRESS,
)

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
RATE_PRECISION = Decimal("0.0001")


class PricingError(ValidationError):
    pass


def to_decimal(value, default=Decimal("0")) -> Decimal:
    """Coerce DB/JSON numbers (Decimal, float, int, str) to Decimal."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise PricingError(f"Invalid amount: {value!r}")


def money(value) -> Decimal:
    """Round to cents (half up)."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Decimal amount -> integer cents for Stripe."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sum_extra_charges(extra_charges) -> Decimal:
    return sum((to_decimal(v) for v in (extra_charges or {}).values()), Decimal("0"))


def compute_total(unit_price, quantity, extra_charges) -> Decimal:
    """The order total invariant."""
    return to_decimal(unit_price) * int(quantity) + sum_extra_charges(extra_charges)


@dataclass(frozen=True)
class PricingRates:
    wristband_type: str
    currency: str
    base_price: Decimal
    black_print_extra: Decimal
    full_color_print_extra: Decimal
    trademark_fee_per_thousand: Decimal
    qr_code_fee_per_thousand: Decimal
    express_delivery_fee: Decimal
    min_quantity: int = DEFAULT_MIN_QUANTITY

    @classmethod
    def defaults(cls, wristband_type, currency):
        return cls(
            wristband_type=wristband_type,
            currency=currency,
            base_price=Decimal(DEFAULT_BASE_PRICE),
            black_print_extra=Decimal(DEFAULT_BLACK_PRINT_EXTRA),
            full_color_print_extra=Decimal(DEFAULT_FULL_COLOR_PRINT_EXTRA),
            trademark_fee_per_thousand=Decimal(DEFAULT_TRADEMARK_FEE_PER_THOUSAND),
            qr_code_fee_per_thousand=Decimal(DEFAULT_QR_CODE_FEE_PER_THOUSAND),
            express_delivery_fee=Decimal(DEFAULT_EXPRESS_DELIVERY_FEE),
            min_quantity=DEFAULT_MIN_QUANTITY,
        )

    @classmethod
    def from_row(cls, row):
        row = dict(row)
        return cls(
            wristband_type=row['wristband_type'],
            currency=row['currency'],
            base_price=to_decimal(row.get('base_price')),
            black_print_extra=to_decimal(row.get('black_print_extra')),
            full_color_print_extra=to_decimal(row.get('full_color_print_extra')),
            trademark_fee_per_thousand=to_decimal(row.get('trademark_fee_per_thousand')),
            qr_code_fee_per_thousand=to_decimal(row.get('qr_code_fee_per_thousand')),
            express_delivery_fee=to_decimal(row.get('express_delivery_fee')),
            min_quantity=int(row.get('min_quantity') or DEFAULT_MIN_QUANTITY),
        )


@dataclass(frozen=True)
class PriceQuote:
    wristband_type: str
    currency: str
    quantity: int
    print_type: str
    base_price: Decimal
    unit_price: Decimal
    total_price: Decimal
    min_quantity: int
    extra_charges: dict = field(default_factory=dict)

    def to_dict(self):
        return {
            "wristbandType": self.wristband_type,
            "currency": self.currency,
            "quantity": self.quantity,
            "printType": self.print_type,
            "basePrice": float(self.base_price),
            "unitPrice": float(self.unit_price),
            "extraCharges": {k: float(v) for k, v in self.extra_charges.items()},
            "totalPrice": float(money(self.total_price)),
            "minQuantity": self.min_quantity,
        }


def normalize_currency(currency) -> str:
    code = (currency or DEFAULT_CURRENCY).strip().upper()
    if code not in CURRENCIES:
        raise PricingError(f"Unsupported currency: {currency}")
    return code


def normalize_wristband_type(wristband_type) -> str:
    value = (wristband_type or "").strip().lower()
    if value not in WRISTBAND_TYPES:
        raise PricingError(f"Unknown wristband type: {wristband_type}")
    return value


def normalize_quantity(quantity) -> int:
    if isinstance(quantity, bool):
        raise PricingError("Quantity must be a whole number")
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        raise PricingError("Quantity must be a whole number")
    if str(quantity).strip() != str(value) and not isinstance(quantity, int):
        raise PricingError("Quantity must be a whole number")
    return value


def calculate_price(rates: PricingRates, quantity, print_type=PRINT_TYPE_NONE,
                    has_trademark=False, has_qr_code=False, express_delivery=False) -> PriceQuote:
    """
    Price one wristband order.

    unit_price covers the band and its print; trademark text and QR code
    are flat per-order fees pro-rated per 1000 bands; express delivery
    is a flat fee. Quantity below the configured minimum is rejected.
    """
    quantity = normalize_quantity(quantity)
    if quantity < rates.min_quantity:
        raise PricingError(
            f"Minimum quantity is {rates.min_quantity} pieces",
            minQuantity=rates.min_quantity,
        )

    print_type = (print_type or PRINT_TYPE_NONE).strip().lower()
    if print_type not in PRINT_TYPES:
        raise PricingError(f"Unknown print type: {print_type}")

    unit_price = rates.base_price
    if print_type == PRINT_TYPE_BLACK:
        unit_price += rates.black_print_extra
    elif print_type == PRINT_TYPE_FULL_COLOR:
        unit_price += rates.full_color_print_extra
    unit_price = unit_price.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)

    extra_charges = {}
    if has_trademark:
        extra_charges[EXTRA_TRADEMARK] = money(rates.trademark_fee_per_thousand * quantity / 1000)
    if has_qr_code:
        extra_charges[EXTRA_QR_CODE] = money(rates.qr_code_fee_per_thousand * quantity / 1000)
    if express_delivery:
        extra_charges[EXTRA_EXPRESS] = money(rates.express_delivery_fee)

    return PriceQuote(
        wristband_type=rates.wristband_type,
        currency=rates.currency,
        quantity=quantity,
        print_type=print_type,
        base_price=rates.base_price,
        unit_price=unit_price,
        total_price=compute_total(unit_price, quantity, extra_charges),
        min_quantity=rates.min_quantity,
        extra_charges=extra_charges,
    )


def load_pricing_rates(db, wristband_type, currency) -> PricingRates:
    wristband_type = normalize_wristband_type(wristband_type)
    currency = normalize_currency(currency)

    row = db.execute(
        "SELECT * FROM pricing_config WHERE wristband_type = %s AND currency = %s",
        (wristband_type, currency)
    ).fetchone()

    if not row:
        logger.info(f"[Pricing] No pricing_config for {wristband_type}/{currency}. Using defaults.")
        return PricingRates.defaults(wristband_type, currency)
    return PricingRates.from_row(row)


def _flag(payload, *keys):
    for key in keys:
        if key in payload:
            value = payload[key]
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
    return False


def parse_order_config(payload: dict) -> dict:
    """
    Normalize an order configuration as sent by the design studio.

    Accepts both snake_case and the studio's camelCase keys.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Order configuration must be an object")

    quantity = payload.get('quantity')
    if quantity is None:
        raise ValidationError("Missing quantity")

    return {
        'wristband_type': normalize_wristband_type(
            payload.get('wristband_type') or payload.get('wristbandType')
        ),
        'currency': normalize_currency(payload.get('currency')),
        'quantity': normalize_quantity(quantity),
        'print_type': (payload.get('print_type') or payload.get('printType') or PRINT_TYPE_NONE),
        'has_trademark': _flag(payload, 'has_trademark', 'hasTrademark'),
        'trademark_text': (payload.get('trademark_text') or payload.get('trademarkText') or "").strip(),
        'has_qr_code': _flag(payload, 'has_qr_code', 'hasQrCode', 'has_secure_guests', 'hasSecureGuests'),
        'express_delivery': _flag(payload, 'express_delivery', 'expressDelivery'),
    }


def quote_for_config(db, config: dict, express_delivery=None) -> PriceQuote:
    """load_pricing_rates + calculate_price for a parse_order_config() result."""
    rates = load_pricing_rates(db, config['wristband_type'], config['currency'])
    return calculate_price(
        rates,
        config['quantity'],
        print_type=config['print_type'],
        has_trademark=config['has_trademark'],
        has_qr_code=config['has_qr_code'],
        express_delivery=config['express_delivery'] if express_delivery is None else express_delivery,
    )
