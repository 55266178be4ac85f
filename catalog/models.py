"""
Catalog models.

Fragrance is the authoritative local record. Market priority, trending flag
and target demographic are derived from the brand on every save and are not
meant to be edited directly.
"""

from django.db import models

from catalog.services.market_intelligence import (
    is_trending_brand,
    market_priority,
    target_demographic,
)


class TargetDemographic(models.TextChoices):
    GEN_Z = "gen_z", "Gen Z"
    BUDGET_CONSCIOUS = "budget_conscious", "Budget Conscious"
    NICHE_ENTHUSIAST = "niche_enthusiast", "Niche Enthusiast"
    MAINSTREAM = "mainstream", "Mainstream"


class DataSource(models.TextChoices):
    """
    Where a record came from.

    API_ONLY_TRANSIENT is never stored; it only tags results built straight
    from external data that did not qualify for storage.
    """

    NATIVE_IMPORT = "native_import", "Native Import"
    API_PROMOTED = "api_promoted", "Promoted from API"
    API_ONLY_TRANSIENT = "api_only_transient", "API Only (Transient)"


class PromotionReason(models.TextChoices):
    TIER1_BRAND = "tier1_brand", "Tier 1 Brand"
    HIGH_RATING = "high_rating", "High Rating"
    POPULAR = "popular", "Popular"
    TRENDING = "trending", "Trending"
    QUALITY_PROFILE = "quality_profile", "Quality Profile"


class Fragrance(models.Model):
    """
    A fragrance in the local catalog.

    external_id is immutable once set: saving a record whose stored external
    id differs from the current value raises ValueError.
    """

    external_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    name = models.CharField(max_length=255, db_index=True)
    brand = models.CharField(max_length=255, db_index=True)
    year = models.PositiveIntegerField(null=True, blank=True)
    concentration = models.CharField(max_length=100, null=True, blank=True)

    top_notes = models.JSONField(default=list, blank=True)
    middle_notes = models.JSONField(default=list, blank=True)
    base_notes = models.JSONField(default=list, blank=True)
    notes_text = models.TextField(blank=True, default="", editable=False)

    community_rating = models.FloatField(null=True, blank=True)
    popularity_score = models.FloatField(null=True, blank=True)
    relevance_score = models.FloatField(default=0)

    market_priority = models.FloatField(default=0.3, editable=False, db_index=True)
    trending = models.BooleanField(default=False, editable=False)
    target_demographic = models.CharField(
        max_length=20,
        choices=TargetDemographic.choices,
        default=TargetDemographic.MAINSTREAM,
        editable=False,
    )

    data_source = models.CharField(
        max_length=20,
        choices=DataSource.choices,
        default=DataSource.NATIVE_IMPORT,
    )
    data_quality = models.FloatField(default=0.5)
    promotion_reason = models.CharField(
        max_length=20,
        choices=PromotionReason.choices,
        null=True,
        blank=True,
    )
    promoted_at = models.DateTimeField(null=True, blank=True)
    last_enhanced = models.DateTimeField(null=True, blank=True)

    has_redundant_name = models.BooleanField(default=False)
    has_year_in_name = models.BooleanField(default=False)
    has_concentration_in_name = models.BooleanField(default=False)

    verified = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "fragrances"
        ordering = ["-market_priority", "name"]
        indexes = [
            models.Index(fields=["brand", "name"], name="fragrance_brand_name_idx"),
            models.Index(fields=["data_source"], name="fragrance_source_idx"),
            models.Index(fields=["popularity_score"], name="fragrance_popularity_idx"),
        ]

    def __str__(self):
        return f"{self.name} by {self.brand}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_external_id = dict(zip(field_names, values)).get("external_id")
        return instance

    @property
    def all_notes(self):
        return list(self.top_notes or []) + list(self.middle_notes or []) + list(self.base_notes or [])

    def _derive_fields(self):
        self.market_priority = market_priority(self.brand)
        self.trending = is_trending_brand(self.brand)
        self.target_demographic = target_demographic(self.brand)
        self.notes_text = "|".join(note.lower() for note in self.all_notes)

    def save(self, *args, **kwargs):
        loaded = getattr(self, "_loaded_external_id", None)
        if loaded is not None and self.external_id != loaded:
            raise ValueError(
                f"external_id of {self} is immutable ({loaded!r} -> {self.external_id!r})"
            )

        self._derive_fields()

        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            update_fields = set(update_fields)
            if "brand" in update_fields:
                update_fields.update({"market_priority", "trending", "target_demographic"})
            if update_fields & {"top_notes", "middle_notes", "base_notes"}:
                update_fields.add("notes_text")
            update_fields.add("updated_at")
            kwargs["update_fields"] = update_fields

        super().save(*args, **kwargs)
        self._loaded_external_id = self.external_id
