"""
Django admin configuration for the fragrance catalog.
"""

from django.contrib import admin

from catalog.models import DataSource, Fragrance


@admin.register(Fragrance)
class FragranceAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "brand",
        "year",
        "concentration",
        "community_rating",
        "market_priority",
        "data_source",
        "promotion_reason",
        "verified",
    ]
    list_filter = ["data_source", "promotion_reason", "target_demographic", "trending", "verified"]
    search_fields = ["name", "brand", "external_id"]
    readonly_fields = [
        "notes_text",
        "market_priority",
        "trending",
        "target_demographic",
        "promoted_at",
        "last_enhanced",
        "created_at",
        "updated_at",
    ]
    ordering = ["-market_priority", "name"]
    actions = ["mark_verified"]

    fieldsets = (
        (None, {"fields": ("name", "brand", "year", "concentration", "external_id", "verified")}),
        ("Notes", {"fields": ("top_notes", "middle_notes", "base_notes", "notes_text")}),
        ("Scores", {"fields": ("community_rating", "popularity_score", "relevance_score", "data_quality")}),
        ("Market", {"fields": ("market_priority", "trending", "target_demographic")}),
        (
            "Provenance",
            {
                "fields": (
                    "data_source",
                    "promotion_reason",
                    "promoted_at",
                    "last_enhanced",
                    "has_redundant_name",
                    "has_year_in_name",
                    "has_concentration_in_name",
                    "created_at",
                    "updated_at",
                )
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        fields = list(super().get_readonly_fields(request, obj))
        if obj is not None and obj.external_id:
            fields.append("external_id")
        if obj is not None and obj.data_source == DataSource.API_PROMOTED:
            fields.append("data_source")
        return fields

    @admin.action(description="Mark selected fragrances as verified")
    def mark_verified(self, request, queryset):
        updated = queryset.update(verified=True)
        self.message_user(request, f"{updated} fragrances marked as verified.")
