"""
URL configuration for the Exam Room Booking system.
"""
from django.contrib import admin
from django.conf import settings
from django.urls import path, include

urlpatterns = [
    path(settings.ADMIN_URL, admin.site.urls),
    path('bookings/', include('apps.bookings.urls', namespace='bookings')),
    path('dashboard/', include('apps.dashboard.urls', namespace='dashboard')),
]
