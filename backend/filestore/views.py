from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from . import accounts, library, media
from . import comments as file_comments
from .permissions import HasUserIdHeader, requester_id
from .serializers import (
    CommentSerializer, CredentialsSerializer, FileItemSerializer, PatchSerializer,
    RenameSerializer, ShareSerializer, UploadSerializer,
)
from .throttling import RequesterRateThrottle


def _client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('HTTP_X_REAL_IP') or request.META.get('REMOTE_ADDR') or 'unknown'


class FileViewSet(viewsets.ViewSet):
    """
    Gallery/archive files, addressed by uniqueName:
    - /api/files/                          [GET=list, POST=upload]
    - /api/files/{uniqueName}/             [GET, PATCH=move/favorite, PUT=rename, DELETE]
    - /api/files/{uniqueName}/archive/     [POST=gallery->archive, DELETE=archive->gallery]
    - /api/files/{uniqueName}/metadata/    [GET]
    - /api/files/{uniqueName}/share/       [POST]
    - /api/files/{uniqueName}/comments/    [GET, POST]
    - /api/files/{uniqueName}/comments/{commentId}/  [DELETE]
    """
    permission_classes = [AllowAny]
    throttle_classes = [RequesterRateThrottle]
    lookup_field = 'unique_name'
    lookup_value_regex = '[0-9A-Za-z-]+'

    def get_permissions(self):
        if self.action in ('comments', 'delete_comment') and self.request.method != 'GET':
            return [HasUserIdHeader()]
        return super().get_permissions()

    # GET /api/files/?search=cat&currentFolder=images  -H "UserId: u1"
    def list(self, request):
        qp = request.query_params
        items = library.list_files(
            requester_id(request),
            current_folder=qp.get('currentFolder') or library.FOLDER_ROOT,
            search=qp.get('search', ''),
        )
        return Response(FileItemSerializer(items, many=True).data)

    # upload routes by requester: anonymous -> gallery with a deletionDate, registered -> archive unless addToGallery
    # Example Call:
    # POST /api/files/ -F "file=@song.mp3" -F "previewImage=@cover.png" -F "addToGallery=true" -H "UserId: u1"
    def create(self, request):
        serializer = UploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        item = library.upload(
            requester_id(request),
            data['file'],
            preview_image=data.get('previewImage'),
            add_to_gallery=data.get('addToGallery', False),
            uploader_ip=_client_ip(request),
        )
        return Response(FileItemSerializer(item).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, unique_name=None):
        item = library.get_file(requester_id(request), unique_name)
        return Response(FileItemSerializer(item).data)

    # PATCH /api/files/<uniqueName>/ {"inGallery": true}  -H "UserId: u1"   moves the owner's file
    # PATCH /api/files/<uniqueName>/ {"isFavorite": true}                 anonymous visitors may only favorite
    # JSON only: a multipart form would turn a missing boolean into false
    def partial_update(self, request, unique_name=None):
        serializer = PatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = library.patch_file(
            requester_id(request),
            unique_name,
            in_gallery=serializer.validated_data.get('inGallery'),
            is_favorite=serializer.validated_data.get('isFavorite'),
        )
        return Response({'success': True, 'file': FileItemSerializer(item).data})

    # PUT renames; there is nothing else about a file a client may replace
    def update(self, request, unique_name=None):
        serializer = RenameSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = library.rename_file(requester_id(request), unique_name, serializer.validated_data['newName'])
        return Response({'success': True, 'message': 'File renamed successfully', 'file': FileItemSerializer(item).data})

    # DELETE /api/files/<uniqueName>/  -H "UserId: u1"
    # Anonymous uploads can be deleted by anyone, registered ones only by their uploader (403 otherwise)
    def destroy(self, request, unique_name=None):
        library.delete_file(requester_id(request), unique_name)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post', 'delete'], url_path='archive')
    def archive(self, request, unique_name=None):
        if request.method == 'DELETE':
            item = library.unarchive_file(unique_name)
        else:
            item = library.archive_file(unique_name)
        return Response({'success': True, 'file': FileItemSerializer(item).data})

    @action(detail=True, methods=['get'], url_path='metadata')
    def metadata(self, request, unique_name=None):
        item = library.get_file(requester_id(request), unique_name)
        return Response({'metadata': media.describe(item)})

    @action(detail=True, methods=['post'], url_path='share')
    def share(self, request, unique_name=None):
        serializer = ShareSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        expiry = serializer.validated_data.get('expiryDate')
        link = library.share_file(
            requester_id(request),
            unique_name,
            expiry_date=expiry.isoformat() if expiry else None,
            password=serializer.validated_data.get('password') or None,
        )
        return Response({'shareLink': link})

    @action(detail=True, methods=['get', 'post'], url_path='comments')
    def comments(self, request, unique_name=None):
        if request.method == 'GET':
            found = file_comments.list_comments(unique_name, user_id=request.query_params.get('userId'))
            return Response({'success': True, 'comments': CommentSerializer(found, many=True).data})

        serializer = CommentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        comment = file_comments.add_comment(requester_id(request), unique_name, serializer.validated_data['content'])
        return Response(
            {'success': True, 'comment': CommentSerializer(comment).data},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['delete'], url_path=r'comments/(?P<comment_id>[0-9A-Za-z-]+)')
    def delete_comment(self, request, unique_name=None, comment_id=None):
        file_comments.delete_comment(requester_id(request), unique_name, comment_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class SharedFileView(APIView):
    # GET /api/share/<token>/?password=...
    permission_classes = [AllowAny]
    throttle_classes = [RequesterRateThrottle]

    def get(self, request, token):
        item = library.resolve_share(token, password=request.query_params.get('password'))
        return Response(FileItemSerializer(item).data)


class SignupView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [RequesterRateThrottle]

    def post(self, request):
        serializer = CredentialsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = accounts.signup(serializer.validated_data['username'], serializer.validated_data['password'])
        return Response(
            {'success': True, 'message': 'User registered successfully', 'userId': user.id},
            status=status.HTTP_201_CREATED,
        )


class LoginView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [RequesterRateThrottle]

    def post(self, request):
        serializer = CredentialsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user, session_id = accounts.login(serializer.validated_data['username'], serializer.validated_data['password'])
        return Response({'success': True, 'message': 'Login successful', 'userId': user.id, 'sessionId': session_id})


class LogoutView(APIView):
    permission_classes = [HasUserIdHeader]
    throttle_classes = [RequesterRateThrottle]

    def post(self, request):
        accounts.logout(requester_id(request))
        return Response(status=status.HTTP_204_NO_CONTENT)
