"""
Django Tallyman app configuration.
"""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class TallymanConfig(AppConfig):
    """Tallyman application configuration."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "tallyman"
    verbose_name = _("Stock reconciliation")

    def ready(self):
        """Import signal handlers when app is ready."""
        # Import handlers to register them
        from tallyman.signals import handlers  # noqa: F401
