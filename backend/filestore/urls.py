"""
App-level URL routing for the Pixel Archive API.

We use a DRF router to register FileViewSet, which auto-generates:
- /api/files/                              [GET=list, POST=upload]
- /api/files/{uniqueName}/                 [GET, PATCH, PUT, DELETE]
- /api/files/{uniqueName}/archive/         [POST, DELETE]
- /api/files/{uniqueName}/metadata/        [GET]
- /api/files/{uniqueName}/share/           [POST]
- /api/files/{uniqueName}/comments/        [GET, POST]
- /api/files/{uniqueName}/comments/{id}/   [DELETE]

Share links and accounts are plain APIViews.

Note: The '/api/' prefix is added by the project router in core/urls.py:
    path('api/', include('filestore.urls'))
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import FileViewSet, LoginView, LogoutView, SharedFileView, SignupView

router = DefaultRouter()
router.register(r'files', FileViewSet, basename='file')

urlpatterns = [
    path('', include(router.urls)),
    path('share/<str:token>/', SharedFileView.as_view(), name='shared-file'),
    path('auth/signup/', SignupView.as_view(), name='signup'),
    path('auth/login/', LoginView.as_view(), name='login'),
    path('auth/logout/', LogoutView.as_view(), name='logout'),
]
