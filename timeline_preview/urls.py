from django.urls import include, path

from videos.views import HealthView, ServiceIndexView

urlpatterns = [
    path("", ServiceIndexView.as_view(), name="service_index"),
    path("health", HealthView.as_view(), name="health"),
    path("", include("videos.urls")),
]
