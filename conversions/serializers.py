from rest_framework import serializers

from .languages import display_name, invalid_codes
from .models import ConversionJob, SubtitleRequest


class ConversionJobSerializer(serializers.ModelSerializer):
    subtitle_languages = serializers.SerializerMethodField()

    class Meta:
        model = ConversionJob
        fields = [
            "content_id",
            "name",
            "upload_status",
            "transcode_status",
            "output_size_bytes",
            "input_purged",
            "has_mp4",
            "subtitle_languages",
            "error_message",
            "created_at",
            "submitted_at",
            "completed_at",
        ]

    def get_subtitle_languages(self, obj):
        return [c for c in obj.subtitle_languages.split(",") if c]


class SubtitleRequestSerializer(serializers.ModelSerializer):
    language_name = serializers.SerializerMethodField()

    class Meta:
        model = SubtitleRequest
        fields = [
            "language_code",
            "language_name",
            "status",
            "retry_count",
            "error_message",
            "requested_at",
            "completed_at",
        ]

    def get_language_name(self, obj):
        return display_name(obj.language_code)


def _validate_languages(value):
    """Reject unknown codes up front, de-duplicate while preserving order."""
    bad = invalid_codes(value)
    if bad:
        raise serializers.ValidationError(f"Unsupported language codes: {bad}")
    seen = []
    for code in value:
        if code not in seen:
            seen.append(code)
    return seen


class UploadCreateSerializer(serializers.Serializer):
    file = serializers.FileField()
    # requested once the conversion has FINISHED
    subtitle_languages = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_empty=True,
    )

    def validate_subtitle_languages(self, value):
        return _validate_languages(value) if value else value


class SubtitleRequestCreateSerializer(serializers.Serializer):
    languages = serializers.ListField(child=serializers.CharField(), allow_empty=False)


class SubtitleRetrySerializer(serializers.Serializer):
    languages = serializers.ListField(child=serializers.CharField(), required=False, allow_empty=True)
