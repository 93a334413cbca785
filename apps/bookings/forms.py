from django import forms

from apps.slots.intervals import minutes_to_hhmm, to_minutes

from .engine import Contact
from .exceptions import InvalidTimeFormatError


class HHMMField(forms.CharField):
    """A 24-hour HH:MM wall-clock time, normalised to its canonical form."""

    def to_python(self, value):
        value = super().to_python(value)
        if value in self.empty_values:
            return None
        try:
            return minutes_to_hhmm(to_minutes(value))
        except InvalidTimeFormatError as exc:
            raise forms.ValidationError(str(exc), code=exc.code) from exc


class IntListField(forms.Field):
    """A JSON list of ints or a comma-separated string; returned sorted and de-duplicated."""
    default_error_messages = {
        'invalid': 'Enter a list of whole numbers.',
    }

    def to_python(self, value):
        if value in self.empty_values:
            return []
        if isinstance(value, str):
            value = [part for part in value.split(',') if part.strip()]
        if not isinstance(value, (list, tuple)):
            raise forms.ValidationError(self.error_messages['invalid'], code='invalid')
        values = set()
        for item in value:
            if isinstance(item, bool):
                raise forms.ValidationError(self.error_messages['invalid'], code='invalid')
            try:
                values.add(int(str(item).strip()))
            except ValueError:
                raise forms.ValidationError(self.error_messages['invalid'], code='invalid')
        return sorted(values)


class RowListField(IntListField):
    default_error_messages = {
        'invalid': 'Rows must be whole numbers.',
    }


class ContactForm(forms.Form):
    first_name = forms.CharField(max_length=120)
    last_name = forms.CharField(max_length=120)
    email = forms.EmailField()
    phone = forms.CharField(max_length=30)

    def contact(self) -> Contact:
        return Contact(**{name: self.cleaned_data.get(name) or None for name in ContactForm.base_fields})


class OptionalContactForm(ContactForm):
    """Contact edits where every field may be left out."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for name in ContactForm.base_fields:
            self.fields[name].required = False


class BookingForm(ContactForm):
    exam_slot_id = forms.UUIDField()
    start_time = HHMMField(required=False)
    duration_minutes = forms.IntegerField(required=False, min_value=1)
    selected_rows = RowListField()


class RescheduleForm(OptionalContactForm):
    exam_slot_id = forms.UUIDField(required=False)
    start_time = HHMMField(required=False)
    duration_minutes = forms.IntegerField(required=False, min_value=1)
    selected_rows = RowListField(required=False)

    SCHEDULE_FIELDS = ('exam_slot_id', 'start_time', 'duration_minutes', 'selected_rows')

    def touches_schedule(self) -> bool:
        """True when any slot/time/row field was supplied."""
        return any(self.data.get(name) not in (None, '', []) for name in self.SCHEDULE_FIELDS)

    def schedule(self) -> dict:
        data = self.cleaned_data
        return {
            'slot_id': data.get('exam_slot_id'),
            'start': data.get('start_time'),
            'duration': data.get('duration_minutes'),
            'rows': data.get('selected_rows') or None,
        }


class SearchForm(forms.Form):
    booking_reference = forms.CharField(max_length=40)
    email = forms.CharField(max_length=254)


class AvailabilityQueryForm(forms.Form):
    date = forms.DateField(input_formats=['%Y-%m-%d'])
    duration = forms.IntegerField(required=False, min_value=1)
    exclude_booking_id = forms.UUIDField(required=False)


class DateRangeQueryForm(forms.Form):
    # `from` is a keyword, so the query params are mapped in the view
    from_date = forms.DateField(required=False, input_formats=['%Y-%m-%d'])
    to_date = forms.DateField(required=False, input_formats=['%Y-%m-%d'])


class StartTimesQueryForm(forms.Form):
    slot_id = forms.UUIDField()
    duration = forms.IntegerField(min_value=1)
    rows = RowListField(required=False)
    exclude_booking_id = forms.UUIDField(required=False)
