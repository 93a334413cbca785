import django.core.validators
import django.utils.timezone
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ExamSlot',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('date', models.DateField(db_index=True)),
                ('start_time', models.TimeField()),
                ('end_time', models.TimeField(blank=True, help_text='Set for time-window slots; empty for legacy fixed slots.', null=True)),
                ('allowed_durations', models.JSONField(blank=True, default=list, help_text='Durations in minutes bookers may choose (window slots only).')),
                ('duration_minutes', models.PositiveIntegerField(blank=True, help_text='Fixed duration for legacy slots; full window length for window slots.', null=True)),
                ('location_name', models.CharField(max_length=200)),
                ('row_start', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('row_end', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('default_seats_per_row', models.PositiveIntegerField(blank=True, null=True)),
                ('is_active', models.BooleanField(db_index=True, default=True)),
                ('day_exceptions', models.JSONField(blank=True, help_text='Weekdays (0=Sunday … 6=Saturday) skipped at bulk creation.', null=True)),
            ],
            options={
                'verbose_name': 'Exam Slot',
                'verbose_name_plural': 'Exam Slots',
                'ordering': ['date', 'start_time'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('row_start__lte', models.F('row_end'))), name='ck_exam_slot_row_range'),
                ],
            },
        ),
    ]
