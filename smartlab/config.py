# Smart City Lab Admin Dashboard Configuration

import os
import json
import logging
from datetime import timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.parent.absolute()

LOG_FORMAT = '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'smart-city-lab-secret-key'
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max upload (CSV / Excel)
    JSON_SORT_KEYS = False

    # Firebase Configuration
    FIREBASE_CREDENTIALS = os.environ.get('FIREBASE_CREDENTIALS')
    FIREBASE_ADMIN_SDK_KEY = os.environ.get('FIREBASE_ADMIN_SDK_KEY')
    FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID')

    # Export Configuration
    EXPORT_FOLDER = BASE_DIR / 'exports'
    ALLOWED_UPLOAD_EXTENSIONS = {'csv', 'xlsx', 'xls'}

    # Attendance Configuration
    QR_SCAN_COOLDOWN_MS = 300
    QR_IMAGE_BOX_SIZE = 10
    QR_IMAGE_BORDER = 4

    # Team Configuration
    TEAM_MIN_MEMBERS = 5
    TEAM_MAX_MEMBERS = 6
    DEFAULT_SCORE_OUT_OF = 50

    # Rankings
    TOP_ATTENDANCE_COUNT = 10
    TOP_TEAM_COUNT = 5

    # Student accounts
    GENERATED_EMAIL_DOMAIN = 'school.local'
    GENERATED_PASSWORD_LENGTH = 12

    # Data management (Firestore free tier)
    ESTIMATED_DOC_SIZE_BYTES = 1500
    FIRESTORE_DAILY_LIMITS = {
        'reads': 50000,
        'writes': 20000,
        'deletes': 20000
    }
    MONITORED_COLLECTIONS = [
        'students', 'attendance', 'announcements', 'syllabus', 'teams',
        'teamScores', 'registrationRequests', 'mentors'
    ]

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'smartlab.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5
    ACTIVITY_LOG_ENABLED = True
    RECENT_LOGS_COUNT = 15

    DEBUG = os.environ.get('DEBUG', 'False').lower() in ['true', 'on', '1']
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        app.config.from_object(cls)
        logging.basicConfig(level=getattr(logging, str(cls.LOG_LEVEL).upper(), logging.INFO),
                            format=LOG_FORMAT)

    @classmethod
    def firebase_credentials(cls):
        """
        Resolve service account credentials.

        Returns:
            dict or str or None: Inline service account info, a path to the
            service account file, or None for application default credentials
        """
        if cls.FIREBASE_ADMIN_SDK_KEY:
            return json.loads(cls.FIREBASE_ADMIN_SDK_KEY)
        if cls.FIREBASE_CREDENTIALS:
            return cls.FIREBASE_CREDENTIALS
        return None


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True
    ACTIVITY_LOG_ENABLED = False
    QR_SCAN_COOLDOWN_MS = 300


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        if not app.debug:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('Smart City Lab dashboard startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration class based on name or environment variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


def validate_config(config_class):
    """Validate configuration settings"""
    errors = []

    if config_class is ProductionConfig or issubclass(config_class, ProductionConfig):
        if not (config_class.FIREBASE_ADMIN_SDK_KEY or config_class.FIREBASE_CREDENTIALS):
            errors.append("FIREBASE_ADMIN_SDK_KEY or FIREBASE_CREDENTIALS is required in production")
        if config_class.SECRET_KEY == 'smart-city-lab-secret-key':
            errors.append("SECRET_KEY must be set in production")

    if config_class.FIREBASE_ADMIN_SDK_KEY:
        try:
            json.loads(config_class.FIREBASE_ADMIN_SDK_KEY)
        except ValueError as e:
            errors.append(f"FIREBASE_ADMIN_SDK_KEY is not valid JSON: {e}")

    if config_class.TEAM_MIN_MEMBERS > config_class.TEAM_MAX_MEMBERS:
        errors.append("TEAM_MIN_MEMBERS cannot exceed TEAM_MAX_MEMBERS")

    return errors


def init_config(app, config_name=None):
    """Initialize application with configuration"""
    config_class = get_config(config_name)
    config_class.init_app(app)

    errors = validate_config(config_class)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    return config_class
