import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('clubs', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Request',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('date', models.DateField(blank=True, help_text='記載日', null=True)),
                ('job_title', models.CharField(help_text='職名', max_length=100)),
                ('applicant_name', models.CharField(help_text='申請者氏名', max_length=100)),
                ('category', models.CharField(blank=True, default='', help_text='科目', max_length=100)),
                ('reason', models.TextField(blank=True, default='', help_text='事由')),
                ('payee', models.CharField(blank=True, default='', help_text='支払先', max_length=200)),
                ('total_amount', models.DecimalField(decimal_places=2, default=0, help_text='Sum of item amounts at the time of the last save', max_digits=14, validators=[django.core.validators.MinValueValidator(0)])),
                ('status', models.CharField(choices=[('draft', '下書き'), ('submitted', '承認待ち'), ('approved', '承認済み'), ('rejected', '差し戻し'), ('paid', '支払済み')], default='submitted', max_length=20)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('revision_number', models.PositiveIntegerField(default=1)),
                ('receipt_path', models.CharField(blank=True, help_text='Path of the uploaded receipt in the receipt storage', max_length=500, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('club', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='requests', to='clubs.club')),
                ('user', models.ForeignKey(help_text='Member who submitted the request', on_delete=django.db.models.deletion.PROTECT, related_name='requests', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Request',
                'verbose_name_plural': 'Requests',
                'db_table': 'requests',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['club', 'status'], name='requests_club_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='RequestItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('item_name', models.CharField(max_length=200)),
                ('quantity', models.DecimalField(decimal_places=2, default=1, max_digits=10, validators=[django.core.validators.MinValueValidator(0)])),
                ('unit_price', models.DecimalField(decimal_places=2, default=0, max_digits=12, validators=[django.core.validators.MinValueValidator(0)])),
                ('amount', models.DecimalField(decimal_places=2, editable=False, max_digits=14)),
                ('sort_order', models.PositiveIntegerField(default=0)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='purchases.request')),
            ],
            options={
                'db_table': 'request_items',
                'ordering': ['sort_order'],
            },
        ),
        migrations.CreateModel(
            name='Approval',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role', models.CharField(choices=[('部署担当者', '部署担当者'), ('教頭', '教頭'), ('副校長', '副校長'), ('校長', '校長'), ('理事長', '理事長')], max_length=20)),
                ('name', models.CharField(help_text='Approver name stamped on the slip', max_length=100)),
                ('approved_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approvals_given', to=settings.AUTH_USER_MODEL)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='approvals', to='purchases.request')),
            ],
            options={
                'db_table': 'approvals',
                'ordering': ['approved_at', 'id'],
                'constraints': [models.UniqueConstraint(fields=('request', 'role'), name='approvals_unique_request_role')],
            },
        ),
    ]
