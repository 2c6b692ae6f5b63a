from django.contrib.auth import get_user_model
from django.db import models

# Get the User model (supports custom user models)
User = get_user_model()


class Organization(models.Model):
    """
    Organization model

    Mirrors an organization held in the identity directory. The owner is the user
    who pays for the organization's seat subscription, which is how billing
    webhooks link an org-plan subscription back to an organization.
    """

    kc_org_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Organization identifier in the identity directory"
    )
    name = models.CharField(max_length=255)
    alias = models.CharField(max_length=255, unique=True)
    owner = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='owned_organizations',
        help_text="User who owns the organization and its subscription"
    )
    domains = models.JSONField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'organizations'
        verbose_name = 'Organization'
        verbose_name_plural = 'Organizations'
        ordering = ['id']

    def __str__(self):
        return f"{self.name} ({self.alias})"
