from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("conversions", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="conversionjob",
            name="submitted_at",
            field=models.DateTimeField(blank=True, db_index=True, null=True),
        ),
    ]
