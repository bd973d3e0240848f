"""
WSGI config for bml_lims project.
"""

import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'bml_lims.settings')
application = get_wsgi_application()
