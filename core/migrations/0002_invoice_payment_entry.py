from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="invoice",
            name="payment_entry",
            field=models.ForeignKey(
                blank=True,
                help_text="Bank entry that settled the receivable or payable.",
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="paid_invoices",
                to="core.journalentry",
            ),
        ),
    ]
