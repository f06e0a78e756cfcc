'''
    Output serializers map the snake_case record attributes back to the camelCase keys
    the JSON documents (and clients) use. sharePassword is never sent out.
    Input serializers only validate request bodies; the library layer does the rest.
'''

from rest_framework import serializers


class FileItemSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    uniqueName = serializers.CharField(source='unique_name', read_only=True)
    type = serializers.CharField(read_only=True)
    size = serializers.IntegerField(read_only=True)
    url = serializers.CharField(read_only=True)
    filePath = serializers.CharField(source='file_path', read_only=True)
    modifiedAt = serializers.CharField(source='modified_at', read_only=True)
    folder = serializers.CharField(read_only=True)
    previewImageUrl = serializers.CharField(source='preview_image_url', read_only=True, allow_null=True)
    inGallery = serializers.BooleanField(source='in_gallery', read_only=True, allow_null=True)
    isFavorite = serializers.BooleanField(source='is_favorite', read_only=True)
    uploaderId = serializers.CharField(source='uploader_id', read_only=True, allow_null=True)
    deletionDate = serializers.CharField(source='deletion_date', read_only=True, allow_null=True)
    shareLink = serializers.CharField(source='share_link', read_only=True, allow_null=True)
    shareExpiryDate = serializers.CharField(source='share_expiry_date', read_only=True, allow_null=True)
    # shareToken and sharePassword stay server side; clients only learn whether a password is set
    hasSharePassword = serializers.SerializerMethodField()

    def get_hasSharePassword(self, obj):
        return bool(obj.share_password)


class CommentSerializer(serializers.Serializer):
    commentId = serializers.CharField(source='comment_id', read_only=True)
    fileUniqueName = serializers.CharField(source='file_unique_name', read_only=True)
    userId = serializers.CharField(source='user_id', read_only=True)
    content = serializers.CharField()
    date = serializers.CharField(read_only=True)


# multipart body of POST /api/files/; addToGallery arrives as the string "true"/"false" and DRF parses it
class UploadSerializer(serializers.Serializer):
    file = serializers.FileField(allow_empty_file=True)
    previewImage = serializers.FileField(required=False, allow_null=True)
    addToGallery = serializers.BooleanField(required=False, default=False)


class PatchSerializer(serializers.Serializer):
    # Exactly one of these is expected; the library decides what a missing one means
    inGallery = serializers.BooleanField(required=False, allow_null=True, default=None)
    isFavorite = serializers.BooleanField(required=False, allow_null=True, default=None)


class RenameSerializer(serializers.Serializer):
    newName = serializers.CharField(max_length=255, trim_whitespace=True)


class ShareSerializer(serializers.Serializer):
    expiryDate = serializers.DateTimeField(required=False, allow_null=True)
    password = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)


class CredentialsSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(trim_whitespace=False)
