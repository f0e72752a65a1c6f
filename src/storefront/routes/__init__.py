from storefront.routes.cart import cart_bp
from storefront.routes.pricing import pricing_bp

__all__ = ["cart_bp", "pricing_bp"]
