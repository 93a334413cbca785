from django.contrib import admin
from .models import Booking, BookingStatusLog


class BookingStatusLogInline(admin.TabularInline):
    model = BookingStatusLog
    extra = 0
    readonly_fields = ['from_status', 'to_status', 'changed_by', 'reason', 'changed_at']
    can_delete = False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = [
        'booking_reference', 'full_name', 'email', 'effective_date', 'effective_location_name',
        'booking_start_time', 'booking_duration_minutes', 'status',
    ]
    list_filter = ['status', 'exam_slot__date']
    search_fields = ['booking_reference', 'first_name', 'last_name', 'email', 'phone']
    readonly_fields = ['id', 'manage_token', 'preserved_slot_date', 'preserved_location_name',
                       'created_at', 'updated_at']
    raw_id_fields = ['exam_slot']
    inlines = [BookingStatusLogInline]
    fieldsets = (
        ('Booking', {'fields': ('id', 'booking_reference', 'exam_slot', 'status')}),
        ('Schedule', {'fields': ('booking_start_time', 'booking_duration_minutes', 'selected_rows')}),
        ('Candidate', {'fields': ('first_name', 'last_name', 'email', 'phone')}),
        ('Tombstone', {'fields': ('preserved_slot_date', 'preserved_location_name'), 'classes': ('collapse',)}),
        ('Access', {'fields': ('manage_token',)}),
        ('Audit', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )


@admin.register(BookingStatusLog)
class BookingStatusLogAdmin(admin.ModelAdmin):
    list_display = ['booking', 'from_status', 'to_status', 'changed_by', 'changed_at']
    readonly_fields = ['id', 'booking', 'from_status', 'to_status', 'changed_by', 'reason', 'changed_at']
    search_fields = ['booking__booking_reference', 'booking__email']
