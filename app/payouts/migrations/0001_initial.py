"""
Initial schema for the payout engine.

Creates:
    - OrganizationTrustProfile (read-only mirror of the trust service)
    - FeePolicy, TrustTierPolicy
    - Payout with its split conservation and uniqueness constraints
    - Chargeback
    - ReserveLedgerEntry (append-only reserve movements)
    - WebhookEvent
"""

import uuid

import django.core.validators
import django.db.models.deletion
import django_fsm
from decimal import Decimal
from django.db import migrations, models

PERCENT_VALIDATORS = [
    django.core.validators.MinValueValidator(Decimal("0")),
    django.core.validators.MaxValueValidator(Decimal("100")),
]


def _base_fields():
    return [
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
    ]


TRUST_LEVEL_CHOICES = [
    ("new", "New"),
    ("established", "Established"),
    ("trusted", "Trusted"),
    ("verified_np", "Verified Nonprofit"),
    ("flagged", "Flagged"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        # =====================================================================
        # Organization trust
        # =====================================================================
        migrations.CreateModel(
            name="OrganizationTrustProfile",
            fields=_base_fields()
            + [
                (
                    "organization_id",
                    models.UUIDField(
                        db_index=True,
                        help_text="Organization identifier owned by the organization service",
                        unique=True,
                    ),
                ),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "contact_email",
                    models.EmailField(
                        blank=True,
                        default="",
                        help_text="Recipient for payout notifications",
                        max_length=254,
                    ),
                ),
                (
                    "trust_level",
                    models.CharField(
                        choices=TRUST_LEVEL_CHOICES,
                        db_index=True,
                        default="new",
                        max_length=20,
                    ),
                ),
                ("successful_events_count", models.PositiveIntegerField(default=0)),
                ("chargeback_count", models.PositiveIntegerField(default=0)),
                (
                    "stripe_account_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe connected account ID (acct_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "payouts_enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether Stripe reports the account can receive transfers",
                    ),
                ),
            ],
            options={
                "verbose_name": "Organization Trust Profile",
                "verbose_name_plural": "Organization Trust Profiles",
                "ordering": ["name"],
            },
        ),
        # =====================================================================
        # Policies
        # =====================================================================
        migrations.CreateModel(
            name="FeePolicy",
            fields=_base_fields()
            + [
                (
                    "currency",
                    models.CharField(
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "region",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Region code; blank applies to every region of the currency",
                        max_length=32,
                    ),
                ),
                (
                    "processor_fee_percent",
                    models.DecimalField(
                        decimal_places=3,
                        help_text="Gateway percentage fee, e.g. 2.900",
                        max_digits=5,
                        validators=PERCENT_VALIDATORS,
                    ),
                ),
                (
                    "processor_fee_fixed_cents",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Gateway fixed fee per payout in minor units",
                    ),
                ),
                (
                    "platform_fee_percent",
                    models.DecimalField(
                        decimal_places=3,
                        help_text="Marketplace commission percentage",
                        max_digits=5,
                        validators=PERCENT_VALIDATORS,
                    ),
                ),
                (
                    "free_mode",
                    models.BooleanField(
                        default=False,
                        help_text="When enabled the platform fee is waived",
                    ),
                ),
                (
                    "reserve_basis",
                    models.CharField(
                        choices=[
                            ("net_of_processor_fees", "Gross minus processor fees"),
                            (
                                "net_of_all_fees",
                                "Gross minus processor and platform fees",
                            ),
                        ],
                        default="net_of_processor_fees",
                        max_length=32,
                    ),
                ),
                ("is_active", models.BooleanField(db_index=True, default=True)),
            ],
            options={
                "verbose_name": "Fee Policy",
                "verbose_name_plural": "Fee Policies",
                "ordering": ["currency", "region"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_active", True)),
                        fields=("currency", "region"),
                        name="fee_policy_one_active_per_currency_region",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="TrustTierPolicy",
            fields=_base_fields()
            + [
                (
                    "trust_level",
                    models.CharField(
                        choices=TRUST_LEVEL_CHOICES, max_length=20, unique=True
                    ),
                ),
                (
                    "reserve_percent",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=5,
                        validators=PERCENT_VALIDATORS,
                    ),
                ),
                (
                    "reserve_hold_days",
                    models.PositiveIntegerField(
                        help_text="Days after event end before the reserve can be released",
                    ),
                ),
                (
                    "auto_payout_limit_cents",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Net payouts above this amount require manual review",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Trust Tier Policy",
                "verbose_name_plural": "Trust Tier Policies",
                "ordering": ["trust_level"],
            },
        ),
        # =====================================================================
        # Payout
        # =====================================================================
        migrations.CreateModel(
            name="Payout",
            fields=_base_fields()
            + [
                ("event_id", models.UUIDField(db_index=True)),
                ("organization_id", models.UUIDField(db_index=True)),
                ("event_name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "event_ended_at",
                    models.DateTimeField(
                        help_text="When the auction event ended; starts the maturity window",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                ("gross_amount_cents", models.PositiveBigIntegerField()),
                ("processor_fees_cents", models.PositiveBigIntegerField()),
                ("platform_fee_cents", models.PositiveBigIntegerField()),
                ("reserve_amount_cents", models.PositiveBigIntegerField()),
                ("net_payout_cents", models.PositiveBigIntegerField()),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("eligible", "Eligible"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("held", "Held for Review"),
                            ("failed", "Failed"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("eligible_at", models.DateTimeField(blank=True, null=True)),
                (
                    "flags",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Risk flag tags, e.g. ['open_chargeback']",
                    ),
                ),
                ("requires_review", models.BooleanField(db_index=True, default=False)),
                (
                    "reviewed_by",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Admin user id that approved or rejected the payout",
                        max_length=64,
                    ),
                ),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("review_notes", models.TextField(blank=True, default="")),
                (
                    "transfer_reference",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Transfer ID (tr_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the payout was last claimed for transfer",
                        null=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, default="")),
                (
                    "last_error_code",
                    models.CharField(blank=True, default="", max_length=64),
                ),
                ("last_error_retryable", models.BooleanField(default=True)),
                ("failed_attempts", models.PositiveSmallIntegerField(default=0)),
                (
                    "trust_level_at_creation",
                    models.CharField(
                        choices=TRUST_LEVEL_CHOICES, default="new", max_length=20
                    ),
                ),
                ("reserve_hold_days", models.PositiveIntegerField(default=0)),
                (
                    "reserve_release_at",
                    models.DateTimeField(blank=True, db_index=True, null=True),
                ),
                ("reserve_settled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1, help_text="Incremented on each save"
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "eligible_at"],
                        name="payouts_pay_status_4a1c2e_idx",
                    ),
                    models.Index(
                        fields=["organization_id", "status"],
                        name="payouts_pay_organiz_8d3f7b_idx",
                    ),
                    models.Index(
                        fields=["status", "reserve_release_at"],
                        name="payouts_pay_status_c92e51_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("event_id", "organization_id"),
                        name="payout_one_per_event_organization",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("gross_amount_cents__gt", 0)),
                        name="payout_gross_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "gross_amount_cents",
                                models.F("processor_fees_cents")
                                + models.F("platform_fee_cents")
                                + models.F("reserve_amount_cents")
                                + models.F("net_payout_cents"),
                            )
                        ),
                        name="payout_split_conserves_gross",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Chargeback
        # =====================================================================
        migrations.CreateModel(
            name="Chargeback",
            fields=_base_fields()
            + [
                ("organization_id", models.UUIDField(db_index=True)),
                ("event_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("amount_cents", models.PositiveBigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("open", "Open"),
                            ("won", "Won"),
                            ("lost", "Lost"),
                            ("closed", "Closed"),
                        ],
                        db_index=True,
                        default="open",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "gateway_dispute_id",
                    models.CharField(
                        help_text="Stripe Dispute ID (dp_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "gateway_payment_intent_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe PaymentIntent ID the dispute was raised against",
                        max_length=255,
                    ),
                ),
                (
                    "deducted_from_reserve",
                    models.BooleanField(db_index=True, default=False),
                ),
                ("recovered_cents", models.PositiveBigIntegerField(default=0)),
                ("shortfall_cents", models.PositiveBigIntegerField(default=0)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "resolution_source",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("gateway", "Gateway Callback"),
                            ("admin", "Admin Action"),
                        ],
                        default="",
                        max_length=10,
                    ),
                ),
            ],
            options={
                "verbose_name": "Chargeback",
                "verbose_name_plural": "Chargebacks",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["organization_id", "status"],
                        name="payouts_cha_organiz_1e6b0d_idx",
                    ),
                    models.Index(
                        fields=["status", "deducted_from_reserve"],
                        name="payouts_cha_status_7f2a93_idx",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Reserve ledger
        # =====================================================================
        migrations.CreateModel(
            name="ReserveLedgerEntry",
            fields=[
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
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this entry was recorded",
                    ),
                ),
                (
                    "entry_type",
                    models.CharField(
                        choices=[
                            ("withheld", "Withheld"),
                            ("released", "Released"),
                            ("forfeited_partial", "Forfeited (Partial)"),
                            ("forfeited_full", "Forfeited (Full)"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Amount in cents (always positive)",
                    ),
                ),
                ("reason", models.TextField(blank=True, default="")),
                (
                    "transfer_reference",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Transfer ID for released reserves",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Unique key to prevent duplicate entries",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reserve_entries",
                        to="payouts.payout",
                    ),
                ),
                (
                    "related_chargeback",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reserve_entries",
                        to="payouts.chargeback",
                    ),
                ),
            ],
            options={
                "verbose_name": "Reserve Ledger Entry",
                "verbose_name_plural": "Reserve Ledger Entries",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["payout", "entry_type"],
                        name="payouts_res_payout__5b8e2c_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="reserve_entry_amount_cents_positive",
                    )
                ],
            },
        ),
        # =====================================================================
        # Webhooks
        # =====================================================================
        migrations.CreateModel(
            name="WebhookEvent",
            fields=_base_fields()
            + [
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("event_type", models.CharField(db_index=True, max_length=100)),
                (
                    "payload",
                    models.JSONField(help_text="Full webhook payload from Stripe"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, default="")),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="payouts_web_status_3d9c14_idx",
                    ),
                ],
            },
        ),
    ]
