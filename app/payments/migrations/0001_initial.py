import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Version for optimistic locking"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "customer_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Identity provider user id of the paying customer",
                    ),
                ),
                (
                    "environment",
                    models.CharField(
                        choices=[("test", "Test"), ("live", "Live")],
                        default="test",
                        help_text="Gateway environment the payment is charged against",
                        max_length=10,
                    ),
                ),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[("open", "Open"), ("paid", "Paid"), ("complete", "Complete")],
                        db_index=True,
                        default="open",
                        help_text="Current payment state",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        blank=True,
                        help_text="Card descriptor reported by the gateway, e.g. 'VISA ****1111'",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "gateway_order_code",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Gateway order code of the captured charge",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payment reached PAID", null=True
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["customer_id", "state"], name="payment_customer_state_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="CardRecord",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "customer_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Identity provider user id of the card holder",
                    ),
                ),
                (
                    "fingerprint",
                    models.CharField(
                        help_text="Keyed fingerprint of the card number or token",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "token",
                    models.CharField(
                        blank=True,
                        help_text="Stored gateway token, if presented as a token",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "last4",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Last four digits of the card number",
                        max_length=4,
                    ),
                ),
                (
                    "exp_month",
                    models.PositiveSmallIntegerField(
                        blank=True, help_text="Expiry month (1-12)", null=True
                    ),
                ),
                (
                    "exp_year",
                    models.PositiveSmallIntegerField(
                        blank=True, help_text="Expiry year (four digits)", null=True
                    ),
                ),
                (
                    "name_on_card",
                    models.CharField(
                        blank=True, default="", help_text="Cardholder name", max_length=255
                    ),
                ),
            ],
            options={
                "verbose_name": "Card",
                "verbose_name_plural": "Cards",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="SigningToken",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        help_text="Label identifying the issuing system or rotation",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("token", models.BinaryField(help_text="Secret key bytes")),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="Whether this token is accepted for verification",
                    ),
                ),
            ],
            options={
                "verbose_name": "Signing Token",
                "verbose_name_plural": "Signing Tokens",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaymentItem",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("item_type", models.CharField(help_text="Free-form item type tag", max_length=255)),
                (
                    "item_data",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Opaque item payload from the ordering system",
                    ),
                ),
                ("title", models.CharField(help_text="Display title", max_length=255)),
                ("quantity", models.PositiveIntegerField(help_text="Number of units")),
                (
                    "price_minor_units",
                    models.BigIntegerField(help_text="Unit price in minor units (e.g. pence)"),
                ),
                (
                    "position",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Zero-based position in the submitted order",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment this item belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Item",
                "verbose_name_plural": "Payment Items",
                "ordering": ["payment", "position"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gte", 1)),
                        name="payment_item_quantity_positive",
                    ),
                    models.UniqueConstraint(
                        fields=("payment", "position"),
                        name="payment_item_unique_position",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ThreedsChallenge",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("one_time_token", models.TextField(help_text="Gateway one-time 3DS token")),
                (
                    "redirect_url",
                    models.URLField(
                        help_text="Card issuer URL the customer is redirected to",
                        max_length=2048,
                    ),
                ),
                (
                    "order_code",
                    models.CharField(
                        help_text="Gateway order code awaiting completion", max_length=255
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment awaiting the challenge result",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="threeds_challenges",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "3DS Challenge",
                "verbose_name_plural": "3DS Challenges",
                "ordering": ["-created_at"],
                "get_latest_by": "created_at",
            },
        ),
    ]
