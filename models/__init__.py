from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .infrastructure import Infrastructure
from .filter_question import FilterQuestion
from .booking import Booking, BookingAnswer, GuestDailyClaim
from .email_action_token import EmailActionToken
