"""Tax domain constants."""

from django.db import models


class Nexus(models.TextChoices):
    ORIGIN = "origin", "Seller address"
    DESTINATION = "destination", "Buyer address"


class TaxLocation(models.TextChoices):
    """Shipper override of the physical-goods nexus."""

    NONE = "", "Use shop setting"
    ORIGIN = "origin", "Seller address"
    DESTINATION = "destination", "Buyer address"
