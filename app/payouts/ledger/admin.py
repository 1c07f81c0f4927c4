"""
Django admin configuration for the reserve ledger.

Reserve ledger entries are immutable: the admin shows them but cannot
add, edit or delete them. Entries are only written by
ReserveLedgerService.
"""

from django.contrib import admin

from .models import ReserveLedgerEntry


@admin.register(ReserveLedgerEntry)
class ReserveLedgerEntryAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "created_at",
        "payout",
        "entry_type",
        "amount_display",
        "related_chargeback",
        "transfer_reference",
    ]
    list_filter = ["entry_type", "created_at"]
    search_fields = ["id", "idempotency_key", "transfer_reference", "payout__id"]
    readonly_fields = [
        "id",
        "created_at",
        "payout",
        "entry_type",
        "amount_cents",
        "reason",
        "related_chargeback",
        "transfer_reference",
        "idempotency_key",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: ReserveLedgerEntry) -> str:
        """Display the amount formatted as currency."""
        return f"{obj.amount_cents / 100:.2f} {obj.payout.currency.upper()}"

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
