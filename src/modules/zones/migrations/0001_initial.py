import django.utils.timezone
import uuid6
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DeliveryZone",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now, editable=False
                    ),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "deleted_at",
                    models.DateTimeField(
                        blank=True, db_index=True, default=None, null=True
                    ),
                ),
                ("merchant_id", models.CharField(db_index=True, max_length=64)),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True, default="")),
                ("rule_id", models.PositiveIntegerField()),
                (
                    "shape_type",
                    models.CharField(
                        choices=[("polygon", "Polygon"), ("circle", "Circle")],
                        max_length=10,
                    ),
                ),
                ("coordinates", models.JSONField()),
                ("radius_meters", models.FloatField(blank=True, null=True)),
            ],
            options={
                "db_table": "delivery_zones",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["merchant_id", "created_at"],
                        name="zones_merchant_created_idx",
                    )
                ],
            },
        ),
    ]
