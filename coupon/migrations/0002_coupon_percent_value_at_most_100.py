from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("coupon", "0001_initial"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="coupon",
            constraint=models.CheckConstraint(
                condition=~models.Q(type="percent") | models.Q(value__lte=100),
                name="coupon_percent_value_at_most_100",
            ),
        ),
    ]
