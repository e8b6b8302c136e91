"""Ledger markers reference commitments, so they come after commitments.0001."""
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("deals", "0001_initial"),
        ("commitments", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DealLedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event", models.CharField(choices=[("approval", "Approval")], default="approval", max_length=20)),
                ("quantity", models.PositiveIntegerField()),
                ("revenue", models.DecimalField(decimal_places=2, max_digits=14)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "commitment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="commitments.commitment",
                    ),
                ),
                (
                    "deal",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="ledger_entries",
                        to="deals.deal",
                    ),
                ),
            ],
            options={
                "verbose_name": "Deal ledger entry",
                "verbose_name_plural": "Deal ledger",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("commitment", "event"), name="ledger_commitment_event_unique"),
                ],
            },
        ),
    ]
