"""
Seed the default fee policy and trust-tier policies.

Fee policy (USD, all regions):
    - Processor fee 2.9% + 30 cents
    - Platform fee 5%
    - Reserve computed on gross minus processor fees

Trust tiers (reserve %, hold days, automatic payout limit):
    new          10.00%  30 days     500.00
    established   7.50%  21 days   2,500.00
    trusted       5.00%  14 days  10,000.00
    verified_np   5.00%  14 days  25,000.00
    flagged      15.00%  60 days       0.00
"""

from decimal import Decimal

from django.db import migrations

TIER_POLICIES = [
    ("new", Decimal("10.00"), 30, 50_000),
    ("established", Decimal("7.50"), 21, 250_000),
    ("trusted", Decimal("5.00"), 14, 1_000_000),
    ("verified_np", Decimal("5.00"), 14, 2_500_000),
    ("flagged", Decimal("15.00"), 60, 0),
]


def seed_policies(apps, schema_editor):
    FeePolicy = apps.get_model("payouts", "FeePolicy")
    TrustTierPolicy = apps.get_model("payouts", "TrustTierPolicy")

    FeePolicy.objects.get_or_create(
        currency="usd",
        region="",
        is_active=True,
        defaults={
            "processor_fee_percent": Decimal("2.900"),
            "processor_fee_fixed_cents": 30,
            "platform_fee_percent": Decimal("5.000"),
            "free_mode": False,
            "reserve_basis": "net_of_processor_fees",
        },
    )

    for trust_level, reserve_percent, hold_days, auto_limit_cents in TIER_POLICIES:
        TrustTierPolicy.objects.get_or_create(
            trust_level=trust_level,
            defaults={
                "reserve_percent": reserve_percent,
                "reserve_hold_days": hold_days,
                "auto_payout_limit_cents": auto_limit_cents,
            },
        )


def remove_policies(apps, schema_editor):
    FeePolicy = apps.get_model("payouts", "FeePolicy")
    TrustTierPolicy = apps.get_model("payouts", "TrustTierPolicy")

    FeePolicy.objects.filter(currency="usd", region="").delete()
    TrustTierPolicy.objects.filter(
        trust_level__in=[tier[0] for tier in TIER_POLICIES]
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payouts", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_policies, remove_policies),
    ]
