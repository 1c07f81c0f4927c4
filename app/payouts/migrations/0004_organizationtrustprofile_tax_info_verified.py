from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("payouts", "0003_add_payout_schedules"),
    ]

    operations = [
        migrations.AddField(
            model_name="organizationtrustprofile",
            name="tax_info_verified",
            field=models.BooleanField(
                default=False,
                help_text="Whether the organization's tax information (W-9) is verified",
            ),
        ),
    ]
