from django.core.validators import MinValueValidator
from django.db import models
import uuid


class ClubQuerySet(models.QuerySet):

    def active(self):
        return self.filter(deleted_at__isnull=True)


class Club(models.Model):
    """
    Budget-holding club. Every request and member belongs to exactly one club.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200, help_text="Club name")

    total_budget = models.DecimalField(
        max_digits=12,
        decimal_places=0,
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Annual budget in yen"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = ClubQuerySet.as_manager()

    class Meta:
        db_table = 'clubs'
        ordering = ['name']
        verbose_name = 'Club'
        verbose_name_plural = 'Clubs'

    def __str__(self):
        return self.name
