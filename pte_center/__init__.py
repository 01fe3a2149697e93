# PTE Intensive Management - App Package
"""
Main application package for PTE Intensive Management.
Holds the core modules behind the Flask application: access control,
payment and course monitoring, notifications and the document store.
"""

__version__ = "1.0.0"
__author__ = "PTE Intensive Team"
__description__ = "Role-based student, attendance and tuition management for a PTE test-preparation center"

# Import core components for easy access
from .modules.access_policy import AccessPolicy, Decision, Role
from .modules.auth_manager import Principal, RequestAuthorizer
from .modules.database_manager import DatabaseManager
from .modules.notification_system import NotificationConfig, NotificationDispatcher
from .modules.student_manager import Student, detect_overdue_students

__all__ = [
    'AccessPolicy',
    'Decision',
    'Role',
    'Principal',
    'RequestAuthorizer',
    'DatabaseManager',
    'NotificationConfig',
    'NotificationDispatcher',
    'Student',
    'detect_overdue_students'
]
