from django.contrib import admin
from .lifecycle import delete_slot, delete_slots
from .models import ExamSlot


@admin.register(ExamSlot)
class ExamSlotAdmin(admin.ModelAdmin):
    list_display = ['date', 'start_time', 'end_time', 'location_name', 'row_start', 'row_end', 'is_active']
    list_filter = ['is_active', 'date', 'location_name']
    search_fields = ['location_name']
    list_editable = ['is_active']
    readonly_fields = ['id', 'created_at', 'updated_at']
    date_hierarchy = 'date'
    fieldsets = (
        ('Schedule', {'fields': ('id', 'date', 'start_time', 'end_time', 'duration_minutes', 'allowed_durations')}),
        ('Room', {'fields': ('location_name', 'row_start', 'row_end', 'default_seats_per_row')}),
        ('Status', {'fields': ('is_active', 'day_exceptions')}),
        ('Audit', {'fields': ('created_at', 'updated_at'), 'classes': ('collapse',)}),
    )

    def delete_model(self, request, obj):
        delete_slot(obj.id)

    def delete_queryset(self, request, queryset):
        delete_slots(list(queryset.values_list('id', flat=True)))
