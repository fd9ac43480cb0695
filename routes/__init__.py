from .health import health_bp
from .auth import auth_bp
from .infrastructures import infrastructure_bp
from .booking import booking_bp
from .admin import admin_bp
from .email_actions import email_actions_bp
