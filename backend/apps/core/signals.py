# apps/core/signals.py

from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Tenant


@receiver(post_save, sender=Tenant)
def seed_tenant_sequences(sender, instance, created, **kwargs):
    """Create the document counters for a new tenant"""
    if created:
        from .services.sequences import initialize_sequences
        initialize_sequences(instance)
