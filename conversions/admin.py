from django.contrib import admin

from .models import ConversionJob, QueueMessage, SubtitleRequest


@admin.register(ConversionJob)
class ConversionJobAdmin(admin.ModelAdmin):
    list_display = ("content_id", "name", "upload_status", "transcode_status", "output_size_bytes", "created_at")
    list_filter = ("upload_status", "transcode_status", "input_purged")
    search_fields = ("content_id", "name")
    readonly_fields = ("created_at", "submitted_at", "updated_at", "completed_at")


@admin.register(SubtitleRequest)
class SubtitleRequestAdmin(admin.ModelAdmin):
    list_display = ("content_id", "language_code", "status", "retry_count", "requested_at", "completed_at")
    list_filter = ("status", "language_code")
    search_fields = ("content_id",)


@admin.register(QueueMessage)
class QueueMessageAdmin(admin.ModelAdmin):
    list_display = ("content_id", "process", "status", "sent_at", "received_at")
    list_filter = ("process", "status")
    search_fields = ("content_id", "message_hash")
