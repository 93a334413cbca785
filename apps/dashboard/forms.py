"""Dashboard forms:
 - ExamSlotForm / ExamSlotUpdateForm: single slot create and edit
 - BulkSlotForm: date ranges × time windows with weekday exceptions
 - BulkSlotActionForm / BulkIdsForm: id lists for bulk toggle/delete
"""
from datetime import date as date_type

from django import forms

from apps.bookings.forms import HHMMField, IntListField
from apps.slots.lifecycle import DateRange, TimeWindow
from apps.slots.models import DAY_EXCEPTION_CHOICES

# 0 = Sunday … 6 = Saturday
WEEKDAY_CHOICES = [(str(value), label) for value, label in DAY_EXCEPTION_CHOICES]


def _flag(form, name, default=True) -> bool:
    """BooleanField reads a missing key as False; treat it as `default` instead."""
    if name not in form.data:
        return default
    return form.cleaned_data.get(name, default)


class ExamSlotForm(forms.Form):
    date = forms.DateField(input_formats=['%Y-%m-%d'])
    start_time = HHMMField()
    end_time = HHMMField(required=False)
    allowed_durations = IntListField(required=False)
    duration_minutes = forms.IntegerField(required=False, min_value=1)
    location_name = forms.CharField(max_length=200)
    row_start = forms.IntegerField(min_value=1)
    row_end = forms.IntegerField(min_value=1)
    default_seats_per_row = forms.IntegerField(required=False, min_value=1)
    is_active = forms.BooleanField(required=False)
    repeat_until = forms.DateField(required=False, input_formats=['%Y-%m-%d'])

    def clean(self):
        cleaned = super().clean()
        if cleaned.get('end_time') and not cleaned.get('allowed_durations'):
            self.add_error('allowed_durations', 'A time-window slot needs at least one allowed duration.')
        return cleaned

    def slot_kwargs(self) -> dict:
        data = dict(self.cleaned_data)
        data['is_active'] = _flag(self, 'is_active')
        return data


class ExamSlotUpdateForm(ExamSlotForm):
    """Partial edit: only keys present in the request body are applied."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        del self.fields['repeat_until']
        for field in self.fields.values():
            field.required = False

    def clean(self):
        return forms.Form.clean(self)

    def changes(self) -> dict:
        changes = {name: self.cleaned_data[name] for name in self.fields if name in self.data}
        if 'is_active' in changes:
            changes['is_active'] = _flag(self, 'is_active')
        if 'allowed_durations' in changes and changes['allowed_durations'] is None:
            changes['allowed_durations'] = []
        return changes


class _JSONListField(forms.Field):
    """A JSON list of objects, each turned into `item_class` by `build_item`."""
    default_error_messages = {
        'invalid': 'Enter a list of objects.',
    }

    def to_python(self, value):
        if value in self.empty_values:
            return []
        if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
            raise forms.ValidationError(self.error_messages['invalid'], code='invalid')
        return [self.build_item(item) for item in value]

    def build_item(self, item):
        raise NotImplementedError


class DateRangeListField(_JSONListField):
    default_error_messages = {
        'invalid': 'Date ranges must be a list of {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"}.',
    }

    def build_item(self, item):
        try:
            return DateRange(
                start=date_type.fromisoformat(str(item['start'])),
                end=date_type.fromisoformat(str(item['end'])),
            )
        except (KeyError, ValueError):
            raise forms.ValidationError(self.error_messages['invalid'], code='invalid')


class TimeWindowListField(_JSONListField):
    default_error_messages = {
        'invalid': 'Time windows must be a list of {"start_time", "end_time", "allowed_durations"}.',
    }

    def build_item(self, item):
        try:
            start, end = HHMMField().clean(item['start_time']), HHMMField().clean(item['end_time'])
            durations = IntListField(required=False).clean(item.get('allowed_durations'))
        except KeyError:
            raise forms.ValidationError(self.error_messages['invalid'], code='invalid')
        return TimeWindow(start_time=start, end_time=end, allowed_durations=durations)


class BulkSlotForm(forms.Form):
    date_ranges = DateRangeListField()
    time_windows = TimeWindowListField()
    location_name = forms.CharField(max_length=200)
    row_start = forms.IntegerField(min_value=1)
    row_end = forms.IntegerField(min_value=1)
    day_exceptions = forms.TypedMultipleChoiceField(choices=WEEKDAY_CHOICES, coerce=int, required=False)
    default_seats_per_row = forms.IntegerField(required=False, min_value=1)
    is_active = forms.BooleanField(required=False)

    def __init__(self, data=None, *args, **kwargs):
        if data is not None and isinstance(data.get('day_exceptions'), list):
            data = {**data, 'day_exceptions': [str(d) for d in data['day_exceptions']]}
        super().__init__(data, *args, **kwargs)

    def slot_kwargs(self) -> dict:
        data = dict(self.cleaned_data)
        data['is_active'] = _flag(self, 'is_active')
        return data


class BulkIdsForm(forms.Form):
    ids = forms.JSONField()

    def clean_ids(self):
        ids = self.cleaned_data['ids']
        if not isinstance(ids, list) or not ids:
            raise forms.ValidationError('Provide a non-empty list of ids.')
        return [str(i) for i in ids]


class BulkSlotActionForm(BulkIdsForm):
    is_active = forms.BooleanField(required=False)
