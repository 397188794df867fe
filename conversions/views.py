from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import services
from .models import ConversionJob, SubtitleRequest
from .serializers import (
    SubtitleRequestCreateSerializer,
    SubtitleRequestSerializer,
    SubtitleRetrySerializer,
    UploadCreateSerializer,
)
from .status import UploadStatus
from .tasks import submit_conversion


def _not_found():
    return Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)


def _subtitle_response(result):
    if result.success:
        code = status.HTTP_202_ACCEPTED
    elif result.partial:
        code = status.HTTP_207_MULTI_STATUS
    else:
        code = status.HTTP_400_BAD_REQUEST
    return Response(result.as_dict(), status=code)


class UploadAndSubmitView(views.APIView):
    """
    Accepts a media upload, stages it under MEDIA_ROOT, registers the
    ConversionJob for its content and enqueues the submission to the
    transcoder's input bucket. Identical bytes map onto the same job.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = UploadCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        job, created = services.submission_service().register_upload(
            ser.validated_data["file"],
            ser.validated_data.get("subtitle_languages") or (),
        )
        if job.upload_status != UploadStatus.UPLOADED:
            submit_conversion.delay(job.content_id)  # queue background submission
        return Response(
            {"content_id": job.content_id, "created": created, "transcode_status": job.transcode_status},
            status=status.HTTP_202_ACCEPTED,
        )


class JobDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, content_id):
        data = services.get_job_status(content_id)
        if data is None:
            return _not_found()
        return Response(data)


class JobRetryView(views.APIView):
    """Operator retry of a failed upload or a conversion that ended in ERROR/NOT_FOUND."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, content_id):
        if not ConversionJob.objects.filter(pk=content_id).exists():
            return _not_found()
        result = services.retry_conversion(content_id)
        code = status.HTTP_202_ACCEPTED if result.ok else status.HTTP_409_CONFLICT
        return Response(result.as_dict(), status=code)


class SubtitlesView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, content_id):
        if not ConversionJob.objects.filter(pk=content_id).exists():
            return _not_found()
        data = {"content_id": content_id, **services.get_subtitle_status(content_id)}
        data["requests"] = SubtitleRequestSerializer(
            SubtitleRequest.objects.filter(content_id=content_id), many=True
        ).data
        return Response(data)

    def post(self, request, content_id):
        if not ConversionJob.objects.filter(pk=content_id).exists():
            return _not_found()
        ser = SubtitleRequestCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _subtitle_response(services.request_subtitles(content_id, ser.validated_data["languages"]))


class SubtitlesRetryView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, content_id):
        if not ConversionJob.objects.filter(pk=content_id).exists():
            return _not_found()
        ser = SubtitleRetrySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return _subtitle_response(services.retry_subtitles(content_id, ser.validated_data.get("languages") or ()))
