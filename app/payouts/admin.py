"""
Payout admin configuration.

This file imports the reserve ledger admin and registers the payout
engine models with the Django admin. Money fields and FSM states are
read-only: state changes go through the admin API and the services.
"""

from django.contrib import admin

from payouts.ledger.admin import ReserveLedgerEntryAdmin
from payouts.models import (
    Chargeback,
    FeePolicy,
    OrganizationTrustProfile,
    Payout,
    TrustTierPolicy,
    WebhookEvent,
)

__all__ = [
    "ReserveLedgerEntryAdmin",
    "PayoutAdmin",
    "ChargebackAdmin",
    "OrganizationTrustProfileAdmin",
    "FeePolicyAdmin",
    "TrustTierPolicyAdmin",
    "WebhookEventAdmin",
]


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Provides visibility into the split, state and reserve lifecycle.
    """

    list_display = [
        "id",
        "event_name",
        "organization_id",
        "net_display",
        "status",
        "requires_review",
        "failed_attempts",
        "reserve_release_at",
        "created_at",
    ]
    list_filter = ["status", "requires_review", "currency", "trust_level_at_creation"]
    search_fields = [
        "id",
        "event_id",
        "organization_id",
        "event_name",
        "transfer_reference",
    ]
    readonly_fields = [
        "id",
        "event_id",
        "organization_id",
        "event_ended_at",
        "currency",
        "gross_amount_cents",
        "processor_fees_cents",
        "platform_fee_cents",
        "reserve_amount_cents",
        "net_payout_cents",
        "status",
        "flags",
        "eligible_at",
        "reviewed_by",
        "reviewed_at",
        "transfer_reference",
        "processed_at",
        "completed_at",
        "failed_at",
        "last_error_code",
        "failed_attempts",
        "trust_level_at_creation",
        "reserve_hold_days",
        "reserve_release_at",
        "reserve_settled_at",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "event_id", "event_name", "organization_id", "status"),
            },
        ),
        (
            "Split",
            {
                "fields": (
                    "currency",
                    "gross_amount_cents",
                    "processor_fees_cents",
                    "platform_fee_cents",
                    "reserve_amount_cents",
                    "net_payout_cents",
                ),
            },
        ),
        (
            "Review",
            {
                "fields": (
                    "flags",
                    "requires_review",
                    "reviewed_by",
                    "reviewed_at",
                    "review_notes",
                ),
            },
        ),
        (
            "Transfer",
            {
                "fields": (
                    "transfer_reference",
                    "eligible_at",
                    "processed_at",
                    "completed_at",
                    "failed_at",
                    "failed_attempts",
                ),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason", "last_error_code"),
                "classes": ("collapse",),
            },
        ),
        (
            "Reserve",
            {
                "fields": (
                    "trust_level_at_creation",
                    "reserve_hold_days",
                    "event_ended_at",
                    "reserve_release_at",
                    "reserve_settled_at",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
            },
        ),
    )

    def net_display(self, obj: Payout) -> str:
        """Display the net payout formatted as currency."""
        return f"{obj.net_payout_cents / 100:.2f} {obj.currency.upper()}"

    net_display.short_description = "Net payout"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payouts (audit trail)."""
        return False


@admin.register(Chargeback)
class ChargebackAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "gateway_dispute_id",
        "organization_id",
        "event_id",
        "amount_cents",
        "status",
        "deducted_from_reserve",
        "shortfall_cents",
        "created_at",
    ]
    list_filter = ["status", "deducted_from_reserve", "resolution_source"]
    search_fields = ["id", "gateway_dispute_id", "organization_id", "event_id"]
    readonly_fields = [
        "id",
        "amount_cents",
        "currency",
        "status",
        "gateway_dispute_id",
        "gateway_payment_intent_id",
        "deducted_from_reserve",
        "recovered_cents",
        "shortfall_cents",
        "resolved_at",
        "resolution_source",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(OrganizationTrustProfile)
class OrganizationTrustProfileAdmin(admin.ModelAdmin):
    list_display = [
        "organization_id",
        "name",
        "trust_level",
        "successful_events_count",
        "chargeback_count",
        "payouts_enabled",
        "tax_info_verified",
    ]
    list_filter = ["trust_level", "payouts_enabled", "tax_info_verified"]
    search_fields = ["organization_id", "name", "contact_email", "stripe_account_id"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(FeePolicy)
class FeePolicyAdmin(admin.ModelAdmin):
    list_display = [
        "currency",
        "region",
        "processor_fee_percent",
        "processor_fee_fixed_cents",
        "platform_fee_percent",
        "free_mode",
        "reserve_basis",
        "is_active",
    ]
    list_filter = ["currency", "free_mode", "is_active"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(TrustTierPolicy)
class TrustTierPolicyAdmin(admin.ModelAdmin):
    list_display = [
        "trust_level",
        "reserve_percent",
        "reserve_hold_days",
        "auto_payout_limit_cents",
    ]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing for debugging.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False
