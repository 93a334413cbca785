"""
Public booking URLs.

  /bookings/api/dates/            Dates with bookable slots
  /bookings/api/durations/        Durations offered on a date
  /bookings/api/slots/            Per-slot availability for a date
  /bookings/api/start-times/      Start times for a slot + duration
  /bookings/create/               Create a booking
  /bookings/search/               Find bookings by reference + email
  /bookings/manage/<token>/       View / reschedule / cancel (emailed link)
"""
from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    # ── Availability ───────────────────────────────────────────────────────────
    path('api/dates/',              views.api_dates,        name='api_dates'),
    path('api/durations/',          views.api_durations,    name='api_durations'),
    path('api/slots/',              views.api_slots,        name='api_slots'),
    path('api/start-times/',        views.api_start_times,  name='api_start_times'),

    # ── Booking ────────────────────────────────────────────────────────────────
    path('create/',                 views.create,           name='create'),
    path('search/',                 views.search,           name='search'),
    path('manage/<str:token>/',     views.manage,           name='manage'),
]
