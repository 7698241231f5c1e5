"""Transaction classification - separates card payments from spend"""

from typing import Iterable
from cardcycle_gateway.domain.models import Transaction, TransactionKind

# Matched case-insensitively anywhere in the transaction description
PAYMENT_INDICATORS = (
    "pymt",
    "payment",
    "autopay",
    "online payment",
    "mobile payment",
    "phone payment",
    "bank payment",
    "ach payment",
    "electronic payment",
    "web payment",
)


def is_payment_description(description: str | None) -> bool:
    """True if the description carries any payment indicator"""
    if not description:
        return False
    lowered = description.lower()
    return any(indicator in lowered for indicator in PAYMENT_INDICATORS)


def classify(
    description: str | None,
    amount_cents: int,
    require_negative_amount: bool = False,
) -> TransactionKind:
    """
    Label a transaction as payment, charge, or refund.

    Default policy is description-only: a payment-labelled transaction is a
    payment whatever its sign. With require_negative_amount, only
    payment-labelled credits (amount < 0) count as payments and a
    positive-signed "payment" line falls through to charge.
    """
    if is_payment_description(description):
        if not require_negative_amount or amount_cents < 0:
            return TransactionKind.PAYMENT

    if amount_cents < 0:
        return TransactionKind.REFUND
    return TransactionKind.CHARGE


def classify_transaction(txn: Transaction, require_negative_amount: bool = False) -> TransactionKind:
    return classify(txn.description, txn.amount_cents, require_negative_amount)


def exclude_payments(
    transactions: Iterable[Transaction],
    require_negative_amount: bool = False,
) -> list[Transaction]:
    """Drop payments, keeping charges and refunds"""
    return [
        t for t in transactions
        if classify_transaction(t, require_negative_amount) is not TransactionKind.PAYMENT
    ]
