"""Signals for the businesses app."""
from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.core.permissions import DEFAULT_ROLES


@receiver(post_save, sender="businesses.Business")
def create_default_roles(sender, instance, created, **kwargs):
    """Seed default roles for newly created businesses."""
    if not created:
        return

    from apps.businesses.models import Role

    for role_name, permissions in DEFAULT_ROLES.items():
        Role.objects.get_or_create(
            business=instance,
            name=role_name,
            defaults={
                "permissions": permissions,
                "is_system": True,
            },
        )
