# loans/apps.py

from django.apps import AppConfig


class LoansConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "loans"
    verbose_name = "Loans Management"

    def ready(self):
        """Import signals when the app is ready."""
        import loans.signals  # noqa: F401
