"""Mail-fulfillment provider integration (SimpleCertifiedMail REST API)."""
