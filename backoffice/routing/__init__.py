from backoffice.routing.shipping_router import ShippingRouter, validate_quote_request

__all__ = ["ShippingRouter", "validate_quote_request"]
