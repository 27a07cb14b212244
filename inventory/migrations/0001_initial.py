from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("shop", "0001_initial"),
        ("catalog", "0001_initial"),
        ("order", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("kind", models.CharField(choices=[("IN", "Stock In"), ("OUT", "Stock Out"), ("ADJUST", "Adjustment")], max_length=6)),
                ("quantity", models.PositiveIntegerField()),
                ("final_quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("origin", models.CharField(choices=[("manual", "Manual"), ("adjustment", "Adjustment"), ("return", "Return"), ("order", "Online order"), ("order_cancellation", "Order cancellation"), ("physical_sale", "Physical sale")], default="manual", max_length=30)),
                ("reason", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="stock_movements", to=settings.AUTH_USER_MODEL)),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="stock_movements", to="order.order")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="stock_movements", to="catalog.product")),
                ("shop", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="stock_movements", to="shop.shop")),
                ("variant", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="stock_movements", to="catalog.productvariant")),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
        migrations.CreateModel(
            name="StockLevel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("raw_total", models.IntegerField(default=0)),
                ("movement_count", models.PositiveIntegerField(default=0)),
                ("last_movement_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="stock_levels", to="catalog.product")),
                ("shop", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="stock_levels", to="shop.shop")),
                ("variant", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="stock_levels", to="catalog.productvariant")),
            ],
        ),
        migrations.AddIndex(
            model_name="stockmovement",
            index=models.Index(fields=["shop", "product", "variant", "created_at"], name="inventory_mv_track_idx"),
        ),
        migrations.AddIndex(
            model_name="stockmovement",
            index=models.Index(fields=["origin"], name="inventory_mv_origin_idx"),
        ),
        migrations.AddConstraint(
            model_name="stocklevel",
            constraint=models.UniqueConstraint(condition=models.Q(("variant__isnull", True)), fields=("shop", "product"), name="inventory_level_unique_base_track"),
        ),
        migrations.AddConstraint(
            model_name="stocklevel",
            constraint=models.UniqueConstraint(condition=models.Q(("variant__isnull", False)), fields=("shop", "product", "variant"), name="inventory_level_unique_variant_track"),
        ),
    ]
