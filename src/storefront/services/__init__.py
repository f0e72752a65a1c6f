"""Cart, pricing and session services."""
