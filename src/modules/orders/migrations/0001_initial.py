from django.db import migrations, models

import modules.orders.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order_token",
                    models.CharField(
                        default=modules.orders.models.generate_order_token,
                        editable=False,
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("payment_session_id", models.CharField(max_length=255, unique=True)),
                ("customer_email", models.EmailField(max_length=254)),
                (
                    "backup_email",
                    models.EmailField(blank=True, default="", max_length=254),
                ),
                ("sender_name", models.CharField(max_length=200)),
                ("sender_street", models.CharField(max_length=200)),
                (
                    "sender_street2",
                    models.CharField(blank=True, default="", max_length=200),
                ),
                ("sender_city", models.CharField(max_length=100)),
                ("sender_state", models.CharField(max_length=2)),
                ("sender_zip", models.CharField(max_length=10)),
                ("recipient_name", models.CharField(max_length=200)),
                ("recipient_street", models.CharField(max_length=200)),
                (
                    "recipient_street2",
                    models.CharField(blank=True, default="", max_length=200),
                ),
                ("recipient_city", models.CharField(max_length=100)),
                ("recipient_state", models.CharField(max_length=2)),
                ("recipient_zip", models.CharField(max_length=10)),
                (
                    "letter_type",
                    models.CharField(
                        choices=[("text", "Typed letter"), ("pdf", "Uploaded PDF")],
                        default="text",
                        max_length=10,
                    ),
                ),
                ("pdf_id", models.CharField(blank=True, max_length=64, null=True)),
                ("page_count", models.PositiveIntegerField(default=1)),
                ("amount_cents", models.PositiveIntegerField()),
                ("return_receipt", models.BooleanField(default=False)),
                (
                    "tracking_number",
                    models.CharField(blank=True, max_length=64, null=True),
                ),
                (
                    "scm_queue_id",
                    models.CharField(blank=True, max_length=64, null=True),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("sent", "Sent"),
                            ("failed", "Failed"),
                            ("payment_mismatch", "Payment mismatch"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("retry_count", models.PositiveIntegerField(default=0)),
                (
                    "delivery_status",
                    models.CharField(
                        choices=[
                            ("processing", "Processing"),
                            ("queued", "Queued"),
                            ("printed", "Printed"),
                            ("in_transit", "In Transit"),
                            ("delivered", "Delivered"),
                            ("returned", "Returned"),
                            ("failed", "Failed"),
                        ],
                        default="processing",
                        max_length=20,
                    ),
                ),
                ("delivery_status_detail", models.TextField(blank=True, default="")),
                (
                    "delivery_status_updated_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("acceptance_doc_available", models.BooleanField(default=False)),
                ("delivery_doc_available", models.BooleanField(default=False)),
                ("signature_doc_available", models.BooleanField(default=False)),
                ("accepted_date", models.DateTimeField(blank=True, null=True)),
                ("delivery_date", models.DateTimeField(blank=True, null=True)),
                (
                    "signature_name",
                    models.CharField(blank=True, default="", max_length=200),
                ),
                (
                    "phone_number",
                    models.CharField(blank=True, default="", max_length=30),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "retry_count"], name="orders_retry_idx"
                    ),
                    models.Index(fields=["-created_at"], name="orders_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PendingDocument",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("pdf_id", models.CharField(max_length=64, unique=True)),
                ("content_base64", models.TextField()),
                ("page_count", models.PositiveIntegerField(default=1)),
            ],
            options={
                "db_table": "pending_documents",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["created_at"], name="pending_docs_created_idx"
                    ),
                ],
            },
        ),
    ]
