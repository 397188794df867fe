from django.urls import path

from .views import JobDetailView, JobRetryView, SubtitlesRetryView, SubtitlesView, UploadAndSubmitView

urlpatterns = [
    path("jobs/upload/", UploadAndSubmitView.as_view(), name="upload_submit_job"),
    path("jobs/<str:content_id>/", JobDetailView.as_view(), name="job_detail"),
    path("jobs/<str:content_id>/retry/", JobRetryView.as_view(), name="job_retry"),
    path("jobs/<str:content_id>/subtitles/", SubtitlesView.as_view(), name="job_subtitles"),
    path("jobs/<str:content_id>/subtitles/retry/", SubtitlesRetryView.as_view(), name="job_subtitles_retry"),
]
