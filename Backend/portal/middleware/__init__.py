# Middleware package
from .auth_middleware import AuthContext, get_current_user, RoleChecker, require_admin, require_super_admin, require_approved
from .rate_limiter import RateLimiter, rate_limit_check, client_ip
from .audit_log import AuditLogger, audit_log
