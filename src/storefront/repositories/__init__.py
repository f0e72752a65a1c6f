"""HTTP clients for the storefront backend and client-side storage."""
