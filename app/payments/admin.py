"""
Payment admin configuration.

Registers payments and signing tokens with the Django admin.
OPEN -> PAID is made by the state machine only. Admin can mark paid
payments complete once the order is fulfilled.
"""

from django import forms
from django.contrib import admin

from payments.models import CardRecord, Payment, PaymentItem, SigningToken, ThreedsChallenge
from payments.money import from_minor_units
from payments.state_machines import PaymentState

__all__ = [
    "CardRecordAdmin",
    "PaymentAdmin",
    "SigningTokenAdmin",
]


class PaymentItemInline(admin.TabularInline):
    """Inline display of line items for a payment."""

    model = PaymentItem
    extra = 0
    fields = ["item_type", "title", "quantity", "price_display", "item_data"]
    readonly_fields = fields
    can_delete = False

    def price_display(self, obj: PaymentItem) -> str:
        return f"{obj.price} GBP"

    price_display.short_description = "Price"

    def has_add_permission(self, request, obj=None) -> bool:
        return False


class ThreedsChallengeInline(admin.TabularInline):
    """Inline display of the outstanding 3DS challenge, if any."""

    model = ThreedsChallenge
    extra = 0
    fields = ["order_code", "redirect_url", "created_at"]
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Provides visibility into payments and their states. Payments stuck in
    OPEN with a gateway order code in the logs are the ones to reconcile.
    """

    list_display = [
        "id",
        "customer_id",
        "environment",
        "state",
        "total_display",
        "payment_method",
        "created_at",
    ]
    list_filter = ["state", "environment", "created_at"]
    search_fields = ["id", "customer_id", "gateway_order_code"]
    readonly_fields = [
        "id",
        "customer_id",
        "environment",
        "state",
        "payment_method",
        "gateway_order_code",
        "paid_at",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [PaymentItemInline, ThreedsChallengeInline]
    actions = ["mark_complete"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "customer_id", "environment", "state"),
            },
        ),
        (
            "Gateway",
            {
                "fields": ("payment_method", "gateway_order_code", "paid_at"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
                "classes": ("collapse",),
            },
        ),
    )

    def total_display(self, obj: Payment) -> str:
        """Display the order total in currency units."""
        return f"{from_minor_units(obj.total_minor_units())} GBP"

    total_display.short_description = "Total"

    @admin.action(description="Mark selected paid payments as complete")
    def mark_complete(self, request, queryset):
        """Move fulfilled PAID payments to COMPLETE; other states are skipped."""
        count = 0
        for payment in queryset.filter(state=PaymentState.PAID):
            payment.complete()
            payment.save()
            count += 1
        self.message_user(request, f"Marked {count} payments as complete.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(CardRecord)
class CardRecordAdmin(admin.ModelAdmin):
    list_display = ["id", "customer_id", "last4", "exp_month", "exp_year", "created_at"]
    search_fields = ["id", "customer_id", "last4"]
    readonly_fields = [
        "id",
        "customer_id",
        "fingerprint",
        "token",
        "last4",
        "exp_month",
        "exp_year",
        "name_on_card",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False


class SigningTokenForm(forms.ModelForm):
    """Accepts the signing secret as hex, since BinaryField has no form widget."""

    token_hex = forms.CharField(
        label="Token (hex)",
        required=False,
        widget=forms.PasswordInput(render_value=False),
        help_text="Hex-encoded secret. Leave blank to keep the current secret.",
    )

    class Meta:
        model = SigningToken
        fields = ["name", "is_active"]

    def clean_token_hex(self) -> bytes | None:
        value = self.cleaned_data["token_hex"].strip()
        if not value:
            if self.instance.pk is None:
                raise forms.ValidationError("A secret is required for new tokens")
            return None
        try:
            secret = bytes.fromhex(value)
        except ValueError as e:
            raise forms.ValidationError("Secret must be hex encoded") from e
        if len(secret) < 32:
            raise forms.ValidationError("Secret must be at least 32 bytes")
        return secret

    def save(self, commit=True):
        secret = self.cleaned_data.get("token_hex")
        if secret is not None:
            self.instance.token = secret
        return super().save(commit=commit)


@admin.register(SigningToken)
class SigningTokenAdmin(admin.ModelAdmin):
    """
    Operator-managed signing secrets for inline orders.

    Rotate by adding the new token, switching ordering systems over, then
    deactivating the old one.
    """

    form = SigningTokenForm
    list_display = ["name", "is_active", "created_at", "updated_at"]
    list_filter = ["is_active"]
    search_fields = ["name"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["name"]
    fields = ["name", "token_hex", "is_active", "created_at", "updated_at"]
