from django.apps import AppConfig


class CatalogConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.catalog"
    label = "catalog"

    def ready(self) -> None:
        from modules.catalog import signals  # noqa: F401
