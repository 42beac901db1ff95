from rest_framework import serializers
from .models import Video


class VideoSerializer(serializers.ModelSerializer):
    videoId = serializers.UUIDField(source="id", read_only=True)
    originalName = serializers.CharField(source="original_name")
    fileSize = serializers.IntegerField(source="file_size")
    mimeType = serializers.CharField(source="mime_type")
    videoDuration = serializers.FloatField(source="video_duration", allow_null=True)
    thumbnailCount = serializers.IntegerField(source="thumbnail_count", allow_null=True)
    spriteSheetPath = serializers.CharField(source="sprite_sheet_path", allow_null=True)
    metadataPath = serializers.CharField(source="metadata_path", allow_null=True)
    error = serializers.CharField(source="error_message", allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at")
    updatedAt = serializers.DateTimeField(source="updated_at")

    class Meta:
        model = Video
        fields = [
            "videoId",
            "status",
            "originalName",
            "fileSize",
            "mimeType",
            "videoDuration",
            "thumbnailCount",
            "spriteSheetPath",
            "metadataPath",
            "error",
            "createdAt",
            "updatedAt",
        ]


class VideoUploadSerializer(serializers.Serializer):
    video = serializers.FileField(required=False, allow_empty_file=False)


class VideoListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Video.Status.values, required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=500, default=50)


class ThumbnailLookupQuerySerializer(serializers.Serializer):
    time = serializers.FloatField(min_value=0)
