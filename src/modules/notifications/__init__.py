"""Outbound email notifications (best-effort)."""
