"""Pydantic domain models for the forex marketplace API."""

from .constants import (
    PRODUCT_TYPES,
    DELIVERY_TYPES,
    ORDER_STATUSES,
    CANCELLABLE_STATUSES,
    ORDER_TRANSITIONS,
    HOUSE_BUYS_PRODUCTS,
)  # re-export
from .rates import RateCreate, RateUpdate, RateBulkUpdate, RateOut, QuoteRequest, QuoteOut
from .order import OrderCreate, OrderMetadata, OrderOut, OrderStatusUpdate
from .offer import OfferCreate, OfferOut, OfferUpdate, OfferValidateIn, OfferValidationOut
from .user import AddressIn, AddressOut, KycUpdate, User

__all__ = [
    "PRODUCT_TYPES",
    "DELIVERY_TYPES",
    "ORDER_STATUSES",
    "CANCELLABLE_STATUSES",
    "ORDER_TRANSITIONS",
    "HOUSE_BUYS_PRODUCTS",
    "RateCreate",
    "RateUpdate",
    "RateBulkUpdate",
    "RateOut",
    "QuoteRequest",
    "QuoteOut",
    "OrderCreate",
    "OrderMetadata",
    "OrderOut",
    "OrderStatusUpdate",
    "OfferCreate",
    "OfferOut",
    "OfferUpdate",
    "OfferValidateIn",
    "OfferValidationOut",
    "AddressIn",
    "AddressOut",
    "KycUpdate",
    "User",
]
