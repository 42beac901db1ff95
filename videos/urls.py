from django.urls import path
from .views import (
    ThumbnailLookupView,
    UploadVideoView,
    VideoListView,
    VideoMetadataView,
    VideoSpriteView,
    VideoStatusView,
    VideoStreamView,
)

urlpatterns = [
    path("upload", UploadVideoView.as_view(), name="upload_video"),
    path("api/videos", VideoListView.as_view(), name="video_list"),
    path("api/videos/<str:video_id>/status", VideoStatusView.as_view(), name="video_status"),
    path("api/videos/<str:video_id>/metadata", VideoMetadataView.as_view(), name="video_metadata"),
    path("api/videos/<str:video_id>/stream", VideoStreamView.as_view(), name="video_stream"),
    path("api/videos/<str:video_id>/sprite/<int:index>", VideoSpriteView.as_view(), name="video_sprite"),
    path("api/videos/<str:video_id>/thumbnail", ThumbnailLookupView.as_view(), name="video_thumbnail"),
]
