"""
WSGI config for the Exam Room Booking system.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'examrooms.settings.production')

application = get_wsgi_application()
