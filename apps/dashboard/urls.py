from django.urls import path
from . import views

app_name = 'dashboard'

urlpatterns = [
    # ── Auth ──────────────────────────────────────────────────────────────
    path('login/',   views.dashboard_login,  name='login'),
    path('logout/',  views.dashboard_logout, name='logout'),

    # ── Core ──────────────────────────────────────────────────────────────
    path('overview/',                       views.overview,            name='overview'),

    # ── Exam slots ────────────────────────────────────────────────────────
    path('slots/',                          views.slot_list,           name='slot_list'),
    path('slots/bulk/',                     views.slot_bulk,           name='slot_bulk'),
    path('slots/<uuid:slot_id>/',           views.slot_detail,         name='slot_detail'),

    # ── Bookings ──────────────────────────────────────────────────────────
    path('bookings/',                       views.booking_list,        name='booking_list'),
    path('bookings/bulk-delete/',           views.booking_bulk_delete, name='booking_bulk_delete'),
    path('bookings/<uuid:booking_id>/',     views.booking_detail,      name='booking_detail'),
]
