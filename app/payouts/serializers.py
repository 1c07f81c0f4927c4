"""
DRF serializers for the payout admin API.

This module provides serializers for:
- Payout list and detail (with trust context and reserve ledger)
- Review actions (approve, reject)
- Chargeback list and admin resolution

Related files:
    - views.py: PayoutViewSet, ChargebackViewSet
    - services/review.py: ReviewService

Usage:
    serializer = PayoutDetailSerializer(payout)
    data = serializer.data
"""

from __future__ import annotations

from rest_framework import serializers

from payouts.ledger import ReserveLedgerEntry, ReserveLedgerService
from payouts.models import Chargeback, OrganizationTrustProfile, Payout
from payouts.services.chargebacks import RESOLVED_OUTCOMES

REJECT_REASON_MIN_LENGTH = 10
REJECT_REASON_MAX_LENGTH = 500


# =============================================================================
# Payouts
# =============================================================================


class PayoutListSerializer(serializers.ModelSerializer):
    """Compact payout row for lists and the review queue."""

    class Meta:
        model = Payout
        fields = [
            "id",
            "event_id",
            "organization_id",
            "event_name",
            "currency",
            "gross_amount_cents",
            "net_payout_cents",
            "reserve_amount_cents",
            "status",
            "flags",
            "requires_review",
            "event_ended_at",
            "eligible_at",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields


class OrganizationTrustSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrganizationTrustProfile
        fields = [
            "organization_id",
            "name",
            "trust_level",
            "successful_events_count",
            "chargeback_count",
            "payouts_enabled",
            "tax_info_verified",
        ]
        read_only_fields = fields


class ReserveLedgerEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = ReserveLedgerEntry
        fields = [
            "id",
            "entry_type",
            "amount_cents",
            "reason",
            "related_chargeback",
            "transfer_reference",
            "created_at",
        ]
        read_only_fields = fields


class PayoutDetailSerializer(serializers.ModelSerializer):
    """
    Full payout with everything an admin needs to review it.

    Fields (beyond the model):
        organization: Trust profile of the organization, or None
        reserve_balance: withheld/released/forfeited/remaining in cents
        reserve_entries: Reserve ledger history, oldest first
    """

    organization = serializers.SerializerMethodField()
    reserve_balance = serializers.SerializerMethodField()
    reserve_entries = ReserveLedgerEntrySerializer(many=True, read_only=True)

    class Meta:
        model = Payout
        fields = [
            "id",
            "event_id",
            "organization_id",
            "event_name",
            "event_ended_at",
            "currency",
            "gross_amount_cents",
            "processor_fees_cents",
            "platform_fee_cents",
            "reserve_amount_cents",
            "net_payout_cents",
            "status",
            "flags",
            "requires_review",
            "eligible_at",
            "reviewed_by",
            "reviewed_at",
            "review_notes",
            "transfer_reference",
            "processed_at",
            "completed_at",
            "failed_at",
            "failure_reason",
            "last_error_code",
            "failed_attempts",
            "trust_level_at_creation",
            "reserve_hold_days",
            "reserve_release_at",
            "reserve_settled_at",
            "version",
            "created_at",
            "updated_at",
            "organization",
            "reserve_balance",
            "reserve_entries",
        ]
        read_only_fields = fields

    def get_organization(self, obj: Payout) -> dict | None:
        profile = OrganizationTrustProfile.objects.filter(
            organization_id=obj.organization_id
        ).first()
        if profile is None:
            return None
        return OrganizationTrustSerializer(profile).data

    def get_reserve_balance(self, obj: Payout) -> dict:
        return ReserveLedgerService.balance(obj).to_dict()


# =============================================================================
# Review Actions
# =============================================================================


class ApprovePayoutSerializer(serializers.Serializer):
    notes = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        max_length=REJECT_REASON_MAX_LENGTH,
    )


class RejectPayoutSerializer(serializers.Serializer):
    reason = serializers.CharField(
        min_length=REJECT_REASON_MIN_LENGTH,
        max_length=REJECT_REASON_MAX_LENGTH,
        trim_whitespace=True,
    )


# =============================================================================
# Chargebacks
# =============================================================================


class ChargebackSerializer(serializers.ModelSerializer):
    outstanding_cents = serializers.IntegerField(read_only=True)

    class Meta:
        model = Chargeback
        fields = [
            "id",
            "organization_id",
            "event_id",
            "amount_cents",
            "currency",
            "reason",
            "status",
            "gateway_dispute_id",
            "gateway_payment_intent_id",
            "deducted_from_reserve",
            "recovered_cents",
            "shortfall_cents",
            "outstanding_cents",
            "resolved_at",
            "resolution_source",
            "created_at",
        ]
        read_only_fields = fields


class ResolveChargebackSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=sorted(RESOLVED_OUTCOMES))
