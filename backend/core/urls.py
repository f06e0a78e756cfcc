"""
Project-level URL routing.

- /api/   : All API endpoints, delegated to the `filestore` app.
- static(settings.MEDIA_URL) : Serve uploaded files from MEDIA_ROOT in development.
"""
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

urlpatterns = [
    path('api/', include('filestore.urls')),
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
