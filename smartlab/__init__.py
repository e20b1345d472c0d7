# Smart City Lab Admin Dashboard - App Package
"""
Main application package for the Smart City Lab admin dashboard.
This package contains the Flask application factory and all its modules.
"""

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

__version__ = "1.0.0"
__author__ = "Smart City Lab Team"
__description__ = "Admin back end for the Smart City Lab program: QR attendance, students, teams and rankings"

# Import core components for easy access
from .modules.database_manager import DatabaseManager
from .modules.auth_manager import AuthManager
from .modules.student_manager import StudentManager
from .modules.qr_generator import QRGenerator
from .modules.attendance_manager import AttendanceManager
from .modules.ranking_manager import RankingManager
from .modules.team_manager import TeamManager
from .modules.mentor_manager import MentorManager
from .modules.syllabus_manager import SyllabusManager
from .modules.notification_system import NotificationSystem
from .modules.report_generator import ReportGenerator
from .modules.system_monitor import SystemMonitor
from .modules.activity_logger import ActivityLogger
from .config import init_config

__all__ = [
    'create_app',
    'DatabaseManager',
    'AuthManager',
    'StudentManager',
    'QRGenerator',
    'AttendanceManager',
    'RankingManager',
    'TeamManager',
    'MentorManager',
    'SyllabusManager',
    'NotificationSystem',
    'ReportGenerator',
    'SystemMonitor',
    'ActivityLogger',
]

logger = logging.getLogger(__name__)


def create_app(config_name=None, firestore_client=None, auth_client=None):
    """
    Build the Flask application.

    Args:
        config_name (str): Key of the configuration to use, FLASK_ENV by default
        firestore_client: Firestore client to use instead of initializing
            Firebase Admin from the configuration
        auth_client: Replacement for ``firebase_admin.auth``

    Returns:
        Flask: Configured application with every manager registered under
        ``app.extensions['smartlab']``
    """
    app = Flask(__name__)
    config_class = init_config(app, config_name)

    if firestore_client is not None:
        db_manager = DatabaseManager(firestore_client)
    else:
        db_manager = DatabaseManager.from_config(config_class)

    # Initialize system components
    auth_manager = AuthManager(db_manager, auth_client)
    student_manager = StudentManager(
        db_manager, auth_manager,
        email_domain=app.config['GENERATED_EMAIL_DOMAIN'],
        password_length=app.config['GENERATED_PASSWORD_LENGTH']
    )

    app.extensions['smartlab'] = {
        'db': db_manager,
        'auth': auth_manager,
        'students': student_manager,
        'qr': QRGenerator(box_size=app.config['QR_IMAGE_BOX_SIZE'], border=app.config['QR_IMAGE_BORDER']),
        'attendance': AttendanceManager(db_manager, student_manager,
                                        cooldown_ms=app.config['QR_SCAN_COOLDOWN_MS']),
        'rankings': RankingManager(db_manager,
                                   top_attendance_count=app.config['TOP_ATTENDANCE_COUNT'],
                                   top_team_count=app.config['TOP_TEAM_COUNT']),
        'teams': TeamManager(db_manager,
                             min_members=app.config['TEAM_MIN_MEMBERS'],
                             max_members=app.config['TEAM_MAX_MEMBERS'],
                             default_score_out_of=app.config['DEFAULT_SCORE_OUT_OF']),
        'mentors': MentorManager(db_manager),
        'syllabus': SyllabusManager(db_manager),
        'notifications': NotificationSystem(db_manager),
        'reports': ReportGenerator(db_manager, output_dir=app.config['EXPORT_FOLDER']),
        'monitor': SystemMonitor(db_manager,
                                 collections=app.config['MONITORED_COLLECTIONS'],
                                 doc_size_bytes=app.config['ESTIMATED_DOC_SIZE_BYTES'],
                                 daily_limits=app.config['FIRESTORE_DAILY_LIMITS']),
        'activity': ActivityLogger(db_manager, enabled=app.config['ACTIVITY_LOG_ENABLED']),
    }

    from .routes import api
    app.register_blueprint(api)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        """Render HTTP errors as JSON"""
        return jsonify({'success': False, 'error': e.description}), e.code

    logger.info(f"Smart City Lab dashboard created with {config_class.__name__}")
    return app
