from .health import health_bp
from .auth import auth_bp
from .users import users_bp
from .issues import issues_bp
from .audit_logs import audit_bp
