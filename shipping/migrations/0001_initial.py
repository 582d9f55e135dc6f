import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='CarrierSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant', models.CharField(default='default', max_length=64, unique=True)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('password', models.CharField(blank=True, default='', max_length=255)),
                ('token', models.TextField(blank=True, null=True)),
                ('token_refreshed_at', models.DateTimeField(blank=True, null=True)),
                ('default_courier_id', models.CharField(blank=True, default='', max_length=50)),
                ('auto_ship_enabled', models.BooleanField(default=False)),
                ('pickup_postcode', models.CharField(blank=True, default='', max_length=10)),
                ('channel_id', models.CharField(blank=True, default='', max_length=50)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name_plural': 'carrier settings',
            },
        ),
        migrations.CreateModel(
            name='SellerSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('pickup_address', models.JSONField(blank=True, null=True)),
                ('pickup_location', models.CharField(blank=True, default='', max_length=36)),
                ('pickup_registered_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('seller', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='shipping_settings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name_plural': 'seller settings',
            },
        ),
    ]
