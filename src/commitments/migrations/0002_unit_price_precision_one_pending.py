from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("commitments", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="sizecommitment",
            name="price_per_unit",
            field=models.DecimalField(decimal_places=6, max_digits=14, verbose_name="unit price"),
        ),
        migrations.AddConstraint(
            model_name="commitment",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status", "pending")),
                fields=("user", "deal"),
                name="commitment_one_pending_per_user_deal",
            ),
        ),
    ]
