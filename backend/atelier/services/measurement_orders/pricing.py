"""
Delivery fee and tax computation for measurement orders.

Tax is VAT on price plus delivery fee, rounded half-up to two places. The
delivery fee comes from shipping settings and is waived once the price
reaches the free-shipping threshold. When shipping settings cannot be read
the engine falls back to the fee already on the order and keeps going.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from atelier.core.logging import get_logger
from atelier.services.measurement_orders.errors import DependencyDegraded, ValidationError
from atelier.services.measurement_orders.ports import ShippingConfig, ShippingSettingsProvider

logger = get_logger(__name__)

VAT_RATE = Decimal("0.075")
TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value) -> Decimal:
    """Convert to Decimal rounded half-up to two places."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    """Price with its delivery fee and tax."""

    price: Decimal
    delivery_fee: Decimal
    tax: Decimal
    free_shipping_applied: bool = False
    degraded: bool = False

    @property
    def total(self) -> Decimal:
        return self.price + self.delivery_fee + self.tax


class PricingEngine:
    """Computes delivery fees and VAT for measurement orders."""

    MIN_PRICE = ZERO
    MAX_PRICE = Decimal("9999999999.99")

    def __init__(
        self,
        shipping: ShippingSettingsProvider,
        vat_rate: Decimal = VAT_RATE,
    ):
        self.shipping = shipping
        self.vat_rate = Decimal(str(vat_rate))

    def compute_tax(self, price: Decimal, delivery_fee: Decimal) -> Decimal:
        """``round((price + delivery_fee) * vat_rate, 2)``."""
        return to_money((Decimal(price) + Decimal(delivery_fee)) * self.vat_rate)

    async def delivery_fee_for_location(self, shipping_location: str) -> Decimal:
        """
        Provisional fee recorded at intake, before any price exists.

        Unknown locations and unreachable settings both yield zero.
        """
        config = await self._load_settings(shipping_location=shipping_location)
        if config is None:
            return ZERO

        fee = config.fee_for(shipping_location)
        if fee is None:
            logger.info(
                "No delivery fee configured for location",
                shipping_location=shipping_location,
            )
            return ZERO
        return to_money(fee)

    async def quote(
        self,
        price: Decimal,
        shipping_location: str,
        fallback_delivery_fee: Optional[Decimal] = None,
    ) -> PriceQuote:
        """
        Quote fee and tax for a staff-assigned price.

        Args:
            price: Price being assigned
            shipping_location: Order's shipping location
            fallback_delivery_fee: Fee already on the order, used when the
                location is not configured or settings are unreachable

        Returns:
            PriceQuote for the price

        Raises:
            ValidationError: If the price is negative or out of range
        """
        price = self._validate_price(price)
        fallback = to_money(fallback_delivery_fee or ZERO)

        config = await self._load_settings(shipping_location=shipping_location)
        if config is None:
            delivery_fee = fallback
            tax = self.compute_tax(price, delivery_fee)
            return PriceQuote(price=price, delivery_fee=delivery_fee, tax=tax, degraded=True)

        fee = config.fee_for(shipping_location)
        delivery_fee = to_money(fee) if fee is not None else fallback

        threshold = Decimal(config.free_shipping_threshold or ZERO)
        free_shipping = threshold > 0 and price >= threshold
        if free_shipping:
            delivery_fee = to_money(ZERO)

        tax = self.compute_tax(price, delivery_fee)

        logger.debug(
            "Price quoted",
            price=str(price),
            delivery_fee=str(delivery_fee),
            tax=str(tax),
            free_shipping=free_shipping,
        )

        return PriceQuote(
            price=price,
            delivery_fee=delivery_fee,
            tax=tax,
            free_shipping_applied=free_shipping,
        )

    async def _load_settings(self, **context) -> Optional[ShippingConfig]:
        try:
            return await self.shipping.get_settings()
        except DependencyDegraded as e:
            logger.warning(
                "Shipping settings unavailable, using fallback delivery fee",
                dependency=e.dependency,
                error=str(e),
                **context,
            )
            return None

    def _validate_price(self, price) -> Decimal:
        try:
            value = to_money(price)
        except (ArithmeticError, ValueError, TypeError) as e:
            raise ValidationError(f"Invalid price: {price}") from e

        if value < self.MIN_PRICE or value > self.MAX_PRICE:
            raise ValidationError(
                "Price must be a non-negative amount",
                violations=["Price must be a non-negative amount"],
                price=str(price),
            )
        return value
