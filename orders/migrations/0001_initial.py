import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("cart", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("number", models.CharField(blank=True, db_index=True, max_length=32, null=True, unique=True)),
                ("owner_ref", models.CharField(db_index=True, max_length=128)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("placed", "Placed"), ("fulfilled", "Fulfilled"), ("cancelled", "Cancelled")],
                        db_index=True,
                        default="placed",
                        max_length=16,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(choices=[("paid", "Paid"), ("refunded", "Refunded")], default="paid", max_length=16),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=[("stripe", "Stripe"), ("free", "Free (credits only)")], default="stripe", max_length=16
                    ),
                ),
                ("provider_id", models.CharField(blank=True, max_length=255, null=True)),
                ("checkout_session_id", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "currency",
                    models.CharField(
                        choices=[("USD", "US Dollar"), ("CAD", "Canadian Dollar")], default="USD", max_length=3
                    ),
                ),
                ("subtotal_cents", models.PositiveIntegerField(default=0)),
                ("shipping_cents", models.PositiveIntegerField(default=0)),
                ("tax_cents", models.PositiveIntegerField(default=0)),
                (
                    "tax_source",
                    models.CharField(
                        choices=[
                            ("stripe_tax_calculation", "Tax calculation"),
                            ("reconciled_from_total", "Reconciled from charged total"),
                            ("unknown", "Unknown"),
                        ],
                        default="unknown",
                        max_length=32,
                    ),
                ),
                ("discount_cents", models.PositiveIntegerField(default=0)),
                ("credits_cents", models.PositiveIntegerField(default=0)),
                ("total_cents", models.PositiveIntegerField(default=0)),
                ("charged_total_cents", models.PositiveIntegerField(blank=True, null=True)),
                ("total_mismatch_cents", models.IntegerField(default=0)),
                ("shipping", models.JSONField(blank=True, null=True)),
                ("placed_at", models.DateTimeField()),
                (
                    "cart",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to="cart.cart",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-id"],
                "indexes": [
                    models.Index(fields=["user", "status", "created_at"], name="order_user_status_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("provider_id__isnull", False)),
                        fields=("provider", "provider_id"),
                        name="unique_order_per_payment",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("cart__isnull", False)), fields=("cart",), name="unique_order_per_cart"
                    ),
                    models.CheckConstraint(
                        check=models.Q(
                            (
                                "total_cents",
                                models.F("subtotal_cents")
                                - models.F("discount_cents")
                                + models.F("shipping_cents")
                                + models.F("tax_cents"),
                            )
                        ),
                        name="order_total_consistent",
                    ),
                    models.CheckConstraint(
                        check=models.Q(("discount_cents__lte", models.F("subtotal_cents"))),
                        name="order_discount_within_subtotal",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("product_id", models.PositiveIntegerField()),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("unit_price_cents", models.PositiveIntegerField(default=0)),
                ("line_total_cents", models.PositiveIntegerField(default=0)),
                ("option_ids", models.JSONField(default=list)),
                ("artwork", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="items", to="orders.order"
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(check=models.Q(("quantity__gte", 1)), name="orderitem_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("key", models.CharField(max_length=128)),
                ("scope", models.CharField(max_length=128)),
                ("path", models.CharField(max_length=255)),
                ("method", models.CharField(max_length=16)),
                ("request_hash", models.CharField(blank=True, max_length=64, null=True)),
                ("response_code", models.IntegerField(blank=True, null=True)),
                ("response_json", models.JSONField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("key", "scope", "path", "method"), name="uniq_idem_scope_path_method"
                    ),
                ],
            },
        ),
    ]
