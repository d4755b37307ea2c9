"""Pure totals computation over a cart's content.

The engine never reads or writes storage: give it the same cart, coupons,
tax mode and location and it returns the same numbers.
"""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Dict, List, NamedTuple

from cartapi.domain import Cart, CartTotals, ZERO

TWOPLACES = Decimal("0.01")
HUNDRED = Decimal("100")

PER_LINE = "per-line"
PER_SUBTOTAL = "per-subtotal"

TAX_EXCLUSIVE = "excl"
TAX_INCLUSIVE = "incl"
TAX_MODES = (TAX_EXCLUSIVE, TAX_INCLUSIVE)


def to_money(value) -> Decimal:
    d = Decimal(str(value))
    return d.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def split_cents(amount: Decimal, weights: Dict[str, Decimal]) -> Dict[str, Decimal]:
    """Share ``amount`` across ``weights`` in whole cents.

    Shares are floored, then the leftover cents go to the largest remainders
    (earlier keys first on ties). The shares add up to ``amount`` and none
    exceeds its weight as long as ``amount`` does not exceed their sum.
    """
    base = sum(weights.values(), ZERO)
    exact = {key: amount * weight / base for key, weight in weights.items()}
    shares = {key: value.quantize(TWOPLACES, rounding=ROUND_DOWN) for key, value in exact.items()}
    leftover = int((amount - sum(shares.values(), ZERO)) / TWOPLACES)
    by_remainder = sorted(weights, key=lambda key: exact[key] - shares[key], reverse=True)
    for key in by_remainder[:leftover]:
        shares[key] += TWOPLACES
    return shares


class LineTotals(NamedTuple):
    line_subtotal: Decimal
    line_subtotal_tax: Decimal
    line_total: Decimal
    line_total_tax: Decimal


class Pricing(NamedTuple):
    totals: CartTotals
    lines: Dict[str, LineTotals]


class PricingEngine:
    def __init__(self, tax_rates: dict, shipping_methods: dict, rounding_mode: str = PER_LINE):
        if rounding_mode not in (PER_LINE, PER_SUBTOTAL):
            raise ValueError(f"unknown tax rounding mode {rounding_mode!r}")
        self.tax_rates = tax_rates or {}
        self.shipping_methods = shipping_methods or {}
        self.rounding_mode = rounding_mode

    # ------------------------------------------------------------- shipping

    def shipping_packages(self, cart: Cart) -> List[dict]:
        """Derive shipping packages; all shippable lines travel in package 0."""
        keys = [key for key, item in cart.items.items() if item.needs_shipping]
        if not keys:
            return []
        chosen = cart.chosen_shipping_methods.get(0)
        if chosen not in self.shipping_methods:
            chosen = next(iter(self.shipping_methods), None)
        return [
            {
                "package_id": 0,
                "items": keys,
                "rates": {
                    method_id: {
                        "label": method.get("label", method_id),
                        "cost": str(to_money(method.get("cost", "0"))),
                    }
                    for method_id, method in self.shipping_methods.items()
                },
                "chosen_method": chosen,
            }
        ]

    # ---------------------------------------------------------------- taxes

    def rates_for(self, customer_location=None) -> Dict[str, Decimal]:
        country = (getattr(customer_location, "country", "") or "").upper()
        rates = dict(self.tax_rates.get("*", {}))
        rates.update(self.tax_rates.get(country, {}) if country else {})
        return {tax_class: Decimal(str(rate)) for tax_class, rate in rates.items()}

    def _tax(self, amount: Decimal, rate: Decimal) -> Decimal:
        return amount * rate / HUNDRED

    def _sum_taxes(self, raw_taxes) -> Decimal:
        if self.rounding_mode == PER_LINE:
            return sum((to_money(t) for t in raw_taxes), ZERO)
        return to_money(sum(raw_taxes, Decimal("0")))

    # ------------------------------------------------------------ discounts

    def _discounts(self, cart: Cart, coupons: dict, remaining: Dict[str, Decimal]):
        per_line = {key: ZERO for key in remaining}
        per_coupon = {}
        for code in cart.applied_coupons:
            coupon = coupons.get(code)
            if coupon is None:
                continue
            eligible = [
                key for key, item in cart.items.items()
                if coupon_applies_to(coupon, item) and remaining[key] > 0
            ]
            taken = {}
            if coupon.discount_type == "percent":
                for key in eligible:
                    taken[key] = min(to_money(remaining[key] * coupon.amount / HUNDRED), remaining[key])
            elif coupon.discount_type == "fixed_product":
                for key in eligible:
                    item = cart.items[key]
                    taken[key] = min(to_money(coupon.amount * item.quantity), remaining[key])
            else:
                weights = {key: remaining[key] for key in eligible}
                if weights:
                    amount = min(to_money(coupon.amount), sum(weights.values(), ZERO))
                    taken = split_cents(amount, weights)
            for key, amount in taken.items():
                remaining[key] -= amount
                per_line[key] += amount
            per_coupon[code] = sum(taken.values(), ZERO)
        return per_line, per_coupon

    # --------------------------------------------------------------- totals

    def recalculate(self, cart: Cart, tax_mode: str = TAX_EXCLUSIVE, customer_location=None, coupons: dict = None) -> Pricing:
        if tax_mode not in TAX_MODES:
            raise ValueError(f"unknown tax mode {tax_mode!r}")
        rates = self.rates_for(customer_location if customer_location is not None else cart.customer)
        coupons = coupons or {}

        subtotals = {key: to_money(item.price * item.quantity) for key, item in cart.items.items()}
        remaining = dict(subtotals)
        line_discounts, coupon_discounts = self._discounts(cart, coupons, remaining)

        lines = {}
        raw_subtotal_taxes = []
        raw_total_taxes = []
        for key, item in cart.items.items():
            rate = rates.get(item.tax_class, ZERO)
            line_total = subtotals[key] - line_discounts[key]
            raw_sub_tax = self._tax(subtotals[key], rate)
            raw_tot_tax = self._tax(line_total, rate)
            raw_subtotal_taxes.append(raw_sub_tax)
            raw_total_taxes.append(raw_tot_tax)
            lines[key] = LineTotals(subtotals[key], to_money(raw_sub_tax), line_total, to_money(raw_tot_tax))

        subtotal = sum(subtotals.values(), ZERO)
        subtotal_tax = self._sum_taxes(raw_subtotal_taxes)
        items_total = sum((line.line_total for line in lines.values()), ZERO)
        items_tax = self._sum_taxes(raw_total_taxes)

        shipping_total = shipping_tax = ZERO
        for package in self.shipping_packages(cart):
            method = self.shipping_methods.get(package["chosen_method"]) or {}
            cost = to_money(method.get("cost", "0"))
            shipping_total += cost
            if method.get("taxable", True):
                shipping_tax += to_money(self._tax(cost, rates.get("standard", ZERO)))

        fee_total = fee_tax = ZERO
        for fee in cart.fees:
            amount = to_money(fee.amount)
            fee_total += amount
            if fee.taxable:
                fee_tax += to_money(self._tax(amount, rates.get(fee.tax_class, ZERO)))

        discount_total = subtotal - items_total
        discount_tax = subtotal_tax - items_tax
        total_tax = items_tax + shipping_tax + fee_tax
        total = max(items_total + shipping_total + fee_total + total_tax, ZERO)

        if tax_mode == TAX_INCLUSIVE:
            totals = CartTotals(
                subtotal=subtotal + subtotal_tax,
                subtotal_tax=subtotal_tax,
                discount_total=discount_total + discount_tax,
                discount_tax=discount_tax,
                shipping_total=shipping_total + shipping_tax,
                shipping_tax=shipping_tax,
                fee_total=fee_total + fee_tax,
                fee_tax=fee_tax,
                total=total,
                total_tax=total_tax,
                coupon_discounts=coupon_discounts,
            )
        else:
            totals = CartTotals(
                subtotal=subtotal,
                subtotal_tax=subtotal_tax,
                discount_total=discount_total,
                discount_tax=discount_tax,
                shipping_total=shipping_total,
                shipping_tax=shipping_tax,
                fee_total=fee_total,
                fee_tax=fee_tax,
                total=total,
                total_tax=total_tax,
                coupon_discounts=coupon_discounts,
            )
        return Pricing(totals, lines)


def coupon_applies_to(coupon, item) -> bool:
    ids = {item.product_id, item.variation_id} - {0}
    categories = set(item.categories)
    if coupon.excluded_product_ids and ids & set(coupon.excluded_product_ids):
        return False
    if coupon.excluded_product_categories and categories & set(coupon.excluded_product_categories):
        return False
    if coupon.product_ids and not ids & set(coupon.product_ids):
        return False
    if coupon.product_categories and not categories & set(coupon.product_categories):
        return False
    return True
