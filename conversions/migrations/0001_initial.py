import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ConversionJob",
            fields=[
                ("content_id", models.CharField(max_length=40, primary_key=True, serialize=False)),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                ("source_path", models.CharField(blank=True, default="", max_length=512)),
                (
                    "upload_status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("UPLOADED", "Uploaded"), ("UPLOAD_ERROR", "Upload Error")],
                        db_index=True,
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                (
                    "transcode_status",
                    models.CharField(
                        choices=[
                            ("ACCEPTED", "Accepted"),
                            ("IN_PROGRESS", "In Progress"),
                            ("FINISHED", "Finished"),
                            ("NOT_FOUND", "Not Found"),
                            ("ERROR", "Error"),
                        ],
                        db_index=True,
                        default="ACCEPTED",
                        max_length=16,
                    ),
                ),
                ("output_size_bytes", models.BigIntegerField(blank=True, null=True)),
                ("has_mp4", models.BooleanField(default=False)),
                ("input_purged", models.BooleanField(default=False)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("subtitle_languages", models.CharField(blank=True, default="", max_length=512)),
                ("auto_subtitle_languages", models.JSONField(blank=True, default=list)),
                ("error_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="QueueMessage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("message_hash", models.CharField(max_length=32, unique=True)),
                ("content_id", models.CharField(db_index=True, max_length=40)),
                ("process", models.CharField(max_length=32)),
                ("status", models.CharField(max_length=32)),
                ("body", models.JSONField(blank=True, default=dict)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("received_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["content_id", "status"], name="conv_qmsg_content_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubtitleRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("content_id", models.CharField(db_index=True, max_length=40)),
                ("language_code", models.CharField(max_length=16)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                        ],
                        db_index=True,
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("requested_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
                ("error_message", models.TextField(blank=True, default="")),
                ("message_id", models.CharField(blank=True, default="", max_length=128)),
            ],
            options={
                "ordering": ["content_id", "language_code"],
                "constraints": [
                    models.UniqueConstraint(fields=("content_id", "language_code"), name="uniq_subtitle_per_language"),
                ],
            },
        ),
    ]
