"""Payment processor integration (Stripe Checkout)."""
