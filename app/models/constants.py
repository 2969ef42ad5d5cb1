"""Domain constants and enumerations for validation.

Kept as plain string sets (stored verbatim in SQLite); `Literal` aliases give
request models the same vocabulary.
"""

from typing import Dict, FrozenSet, Literal, Set

PRODUCT_TYPES: Set[str] = {
    "BUY_CURRENCY",
    "SELL_CURRENCY",
    "FOREX_CARD",
    "CARD_RELOAD",
    "CARD_UNLOAD",
    "SEND_MONEY",
    "TRAVEL_SIM",
    "TRAVEL_INSURANCE",
}
# Products where the house buys foreign currency from the customer (priced at buy_rate)
HOUSE_BUYS_PRODUCTS: FrozenSet[str] = frozenset({"SELL_CURRENCY", "CARD_UNLOAD"})

DELIVERY_TYPES: Set[str] = {"DOORSTEP", "PICKUP"}

ORDER_STATUSES: Set[str] = {
    "CREATED",
    "KYC_PENDING",
    "PAYMENT_PENDING",
    "PAYMENT_COMPLETED",
    "PROCESSING",
    "OUT_FOR_DELIVERY",
    "COMPLETED",
    "CANCELLED",
    "REFUNDED",
}
CANCELLABLE_STATUSES: FrozenSet[str] = frozenset(
    {"CREATED", "KYC_PENDING", "PAYMENT_PENDING"}
)
ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "CREATED": frozenset(
        {"KYC_PENDING", "PAYMENT_PENDING", "PAYMENT_COMPLETED", "CANCELLED"}
    ),
    "KYC_PENDING": frozenset({"PAYMENT_PENDING", "PAYMENT_COMPLETED", "CANCELLED"}),
    "PAYMENT_PENDING": frozenset({"PAYMENT_COMPLETED", "CANCELLED"}),
    "PAYMENT_COMPLETED": frozenset({"PROCESSING", "REFUNDED"}),
    "PROCESSING": frozenset({"OUT_FOR_DELIVERY", "COMPLETED", "REFUNDED"}),
    "OUT_FOR_DELIVERY": frozenset({"COMPLETED"}),
    "COMPLETED": frozenset(),
    "CANCELLED": frozenset(),
    "REFUNDED": frozenset(),
}
PAYABLE_STATUSES: FrozenSet[str] = frozenset(
    s for s, allowed in ORDER_TRANSITIONS.items() if "PAYMENT_COMPLETED" in allowed
)
# Counted as "pending" on the admin dashboard
DASHBOARD_PENDING_STATUSES: FrozenSet[str] = frozenset(
    {"CREATED", "PAYMENT_PENDING", "PROCESSING"}
)

# Upper bounds for request amounts; keeps 2 dp pricing inside Decimal precision
MAX_FOREIGN_AMOUNT = 10_000_000
MAX_INR_AMOUNT = 10_000_000_000

ProductType = Literal[
    "BUY_CURRENCY",
    "SELL_CURRENCY",
    "FOREX_CARD",
    "CARD_RELOAD",
    "CARD_UNLOAD",
    "SEND_MONEY",
    "TRAVEL_SIM",
    "TRAVEL_INSURANCE",
]
DeliveryType = Literal["DOORSTEP", "PICKUP"]
OrderStatus = Literal[
    "CREATED",
    "KYC_PENDING",
    "PAYMENT_PENDING",
    "PAYMENT_COMPLETED",
    "PROCESSING",
    "OUT_FOR_DELIVERY",
    "COMPLETED",
    "CANCELLED",
    "REFUNDED",
]
AlertType = Literal["EMAIL", "SMS", "BOTH"]
DiscountType = Literal["PERCENTAGE", "FLAT", "CASHBACK"]
KycStatus = Literal["PENDING", "SUBMITTED", "VERIFIED", "REJECTED"]
