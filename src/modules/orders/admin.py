"""Operator views of orders and staged documents.

Orders are never deleted, so delete permissions are withheld.
"""

from django.contrib import admin

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, PendingDocument


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "created_at",
        "customer_email",
        "recipient_name",
        "status",
        "delivery_status",
        "retry_count",
        "tracking_number",
        "amount_cents",
    )
    list_filter = ("status", "delivery_status", "letter_type", "return_receipt")
    search_fields = (
        "=id",
        "customer_email",
        "backup_email",
        "recipient_name",
        "tracking_number",
        "payment_session_id",
        "scm_queue_id",
    )
    readonly_fields = (
        "order_token",
        "payment_session_id",
        "amount_cents",
        "scm_queue_id",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)
    actions = ["count_needing_attention"]

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Count orders needing manual handling")
    def count_needing_attention(self, request, queryset):
        pending = queryset.filter(
            status__in=[OrderStatus.FAILED, OrderStatus.PAYMENT_MISMATCH]
        ).count()
        self.message_user(request, f"{pending} selected order(s) need manual handling.")


@admin.register(PendingDocument)
class PendingDocumentAdmin(admin.ModelAdmin):
    list_display = ("pdf_id", "page_count", "created_at")
    search_fields = ("pdf_id",)
    exclude = ("content_base64",)
    readonly_fields = ("pdf_id", "page_count", "created_at")
