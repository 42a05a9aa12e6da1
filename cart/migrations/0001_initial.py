import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Cart",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("session_id", models.CharField(blank=True, db_index=True, max_length=128, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("open", "Open"),
                            ("checkout", "Checkout"),
                            ("closed", "Closed"),
                            ("abandoned", "Abandoned"),
                        ],
                        db_index=True,
                        default="open",
                        max_length=16,
                    ),
                ),
                (
                    "market",
                    models.CharField(choices=[("US", "United States"), ("CA", "Canada")], default="US", max_length=2),
                ),
                (
                    "currency",
                    models.CharField(
                        choices=[("USD", "US Dollar"), ("CAD", "Canadian Dollar")], default="USD", max_length=3
                    ),
                ),
                ("selected_shipping", models.JSONField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="carts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-updated_at"],
                "indexes": [
                    models.Index(fields=["user", "status"], name="cart_user_status_idx"),
                    models.Index(fields=["session_id", "status"], name="cart_session_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["open", "checkout"]), ("user__isnull", True)),
                        fields=("session_id",),
                        name="one_open_guest_cart_per_session",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["open", "checkout"]), ("user__isnull", False)),
                        fields=("user",),
                        name="one_open_cart_per_user",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CartLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("product_id", models.PositiveIntegerField()),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("option_ids", models.JSONField(default=list)),
                ("unit_price_cents", models.PositiveIntegerField(default=0)),
                ("line_total_cents", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "currency",
                    models.CharField(
                        choices=[("USD", "US Dollar"), ("CAD", "Canadian Dollar")], default="USD", max_length=3
                    ),
                ),
                ("artwork", models.JSONField(blank=True, null=True)),
                (
                    "cart",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="cart.cart"
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.CheckConstraint(check=models.Q(("quantity__gte", 1)), name="cartline_quantity_positive"),
                    models.CheckConstraint(
                        check=models.Q(
                            ("line_total_cents__isnull", True),
                            ("line_total_cents", models.F("unit_price_cents") * models.F("quantity")),
                            _connector="OR",
                        ),
                        name="cartline_total_matches_unit_price",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CartCredit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "reason",
                    models.CharField(
                        choices=[("loyalty", "Loyalty"), ("promotion", "Promotion")], default="loyalty", max_length=32
                    ),
                ),
                ("amount_cents", models.PositiveIntegerField(default=0)),
                ("points", models.PositiveIntegerField(default=0)),
                (
                    "cart",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="credits", to="cart.cart"
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "constraints": [
                    models.UniqueConstraint(fields=("cart", "reason"), name="unique_credit_reason_per_cart"),
                ],
            },
        ),
    ]
