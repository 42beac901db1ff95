from django.apps import AppConfig


class VideosConfig(AppConfig):
    name = "videos"
    default_auto_field = "django.db.models.BigAutoField"

    # object store + queue client used by the HTTP views
    services = None

    def ready(self):
        from .services import Services

        self.services = Services.from_settings()
