"""Root URL configuration for BML LIMS.

Engine endpoints live under ``/lims/``; ``/verify/<hash>/`` is the public,
unauthenticated document check printed on every locked letter and report.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework.permissions import AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from sample_core.views_documents import PublicDocumentVerifyView

from .views import ApiHomeView

auth_patterns = [
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("auth/", include("rest_framework.urls")),
]

schema_patterns = [
    path("", SpectacularAPIView.as_view(permission_classes=[AllowAny]), name="schema"),
    path(
        "docs/",
        SpectacularSwaggerView.as_view(url_name="schema", permission_classes=[AllowAny]),
        name="swagger-ui",
    ),
]

urlpatterns = [
    path("api/", ApiHomeView.as_view(), name="api-home"),
    path("api/", include(auth_patterns)),
    path("api/schema/", include(schema_patterns)),
    path("admin/", admin.site.urls),
    path("verify/<str:document_hash>/", PublicDocumentVerifyView.as_view(), name="public-document-verify"),
    path("lims/", include("sample_core.urls")),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
