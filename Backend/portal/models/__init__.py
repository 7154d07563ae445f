from .audit_log import AuditLog
from .user import User
from .settings import NotificationSettings
from .email_template import EmailTemplate
from .password_reset import PasswordReset
