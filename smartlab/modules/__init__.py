# Smart City Lab Admin Dashboard - Modules Package
"""
Core business logic modules for the Smart City Lab admin dashboard.
Every manager wraps one concern of the dashboard and talks to Firestore
through the shared DatabaseManager.
"""

__version__ = "1.0.0"
__description__ = "Core modules for the Smart City Lab admin dashboard"

# Module descriptions
MODULES = {
    'database_manager': 'Firestore document access and settings',
    'auth_manager': 'Admin request verification and Firebase Auth accounts',
    'student_manager': 'Student accounts, CSV bulk upload and profiles',
    'qr_generator': 'Student QR codes and scan payload parsing',
    'attendance_manager': 'QR scan sessions, daily and paper attendance',
    'ranking_manager': 'Attendance and team rankings, dashboard statistics',
    'team_manager': 'Teams and task scores',
    'mentor_manager': 'Mentor directory',
    'syllabus_manager': 'Session schedule and share codes',
    'notification_system': 'Announcements, student messages and registration review',
    'report_generator': 'Report generation and data export',
    'system_monitor': 'Collection statistics and data management',
    'activity_logger': 'Audit log of admin actions',
}


def get_module_info():
    """Get information about available modules"""
    return MODULES
