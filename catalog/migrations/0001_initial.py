from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Fragrance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("external_id", models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ("name", models.CharField(db_index=True, max_length=255)),
                ("brand", models.CharField(db_index=True, max_length=255)),
                ("year", models.PositiveIntegerField(blank=True, null=True)),
                ("concentration", models.CharField(blank=True, max_length=100, null=True)),
                ("top_notes", models.JSONField(blank=True, default=list)),
                ("middle_notes", models.JSONField(blank=True, default=list)),
                ("base_notes", models.JSONField(blank=True, default=list)),
                ("notes_text", models.TextField(blank=True, default="", editable=False)),
                ("community_rating", models.FloatField(blank=True, null=True)),
                ("popularity_score", models.FloatField(blank=True, null=True)),
                ("relevance_score", models.FloatField(default=0)),
                ("market_priority", models.FloatField(db_index=True, default=0.3, editable=False)),
                ("trending", models.BooleanField(default=False, editable=False)),
                (
                    "target_demographic",
                    models.CharField(
                        choices=[
                            ("gen_z", "Gen Z"),
                            ("budget_conscious", "Budget Conscious"),
                            ("niche_enthusiast", "Niche Enthusiast"),
                            ("mainstream", "Mainstream"),
                        ],
                        default="mainstream",
                        editable=False,
                        max_length=20,
                    ),
                ),
                (
                    "data_source",
                    models.CharField(
                        choices=[
                            ("native_import", "Native Import"),
                            ("api_promoted", "Promoted from API"),
                            ("api_only_transient", "API Only (Transient)"),
                        ],
                        default="native_import",
                        max_length=20,
                    ),
                ),
                ("data_quality", models.FloatField(default=0.5)),
                (
                    "promotion_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("tier1_brand", "Tier 1 Brand"),
                            ("high_rating", "High Rating"),
                            ("popular", "Popular"),
                            ("trending", "Trending"),
                            ("quality_profile", "Quality Profile"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                ("promoted_at", models.DateTimeField(blank=True, null=True)),
                ("last_enhanced", models.DateTimeField(blank=True, null=True)),
                ("has_redundant_name", models.BooleanField(default=False)),
                ("has_year_in_name", models.BooleanField(default=False)),
                ("has_concentration_in_name", models.BooleanField(default=False)),
                ("verified", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "fragrances",
                "ordering": ["-market_priority", "name"],
                "indexes": [
                    models.Index(fields=["brand", "name"], name="fragrance_brand_name_idx"),
                    models.Index(fields=["data_source"], name="fragrance_source_idx"),
                    models.Index(fields=["popularity_score"], name="fragrance_popularity_idx"),
                ],
            },
        ),
    ]
