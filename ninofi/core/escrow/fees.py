"""Escrow fee schedule.

The platform fee and the payment processing fee are separate line items,
both charged on top of the amount placed in escrow.
"""

from decimal import Decimal

from pydantic import BaseModel

from ninofi.common.enums import PaymentMethod
from ninofi.common.exceptions import BadRequestError
from ninofi.config import settings
from ninofi.db.base import money


class FeeBreakdown(BaseModel):
    amount: Decimal
    payment_method: PaymentMethod
    platform_fee_percent: Decimal
    platform_fee: Decimal
    processing_fee_percent: Decimal
    processing_fee: Decimal
    total: Decimal


def processing_fee_percent(payment_method: PaymentMethod | str) -> Decimal:
    method = PaymentMethod(payment_method).value
    if method not in settings.PROCESSING_FEE_PERCENT:
        raise BadRequestError(f"Unsupported payment method '{method}'")
    return Decimal(str(settings.PROCESSING_FEE_PERCENT[method]))


def quote(amount: Decimal, payment_method: PaymentMethod | str) -> FeeBreakdown:
    amount = money(amount)
    if amount <= 0:
        raise BadRequestError("Amount must be greater than zero")

    platform_pct = Decimal(str(settings.PLATFORM_FEE_PERCENT))
    processing_pct = processing_fee_percent(payment_method)

    platform_fee = money(amount * platform_pct / 100)
    processing_fee = money(amount * processing_pct / 100)

    return FeeBreakdown(
        amount=amount,
        payment_method=PaymentMethod(payment_method),
        platform_fee_percent=platform_pct,
        platform_fee=platform_fee,
        processing_fee_percent=processing_pct,
        processing_fee=processing_fee,
        total=amount + platform_fee + processing_fee,
    )
