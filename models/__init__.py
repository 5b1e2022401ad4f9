from .db import db
from .user import User
from .issue import Issue
from .audit_log import AuditLog
