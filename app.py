"""
Smart City Lab Admin Dashboard - Main Application

This module serves as the development entry point for the dashboard API.
The configuration is selected by FLASK_ENV; Firebase credentials come from
FIREBASE_ADMIN_SDK_KEY, FIREBASE_CREDENTIALS or application default
credentials.
"""

import logging
import os

from smartlab import create_app

app = create_app()
logger = logging.getLogger(__name__)

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Starting Smart City Lab dashboard on port {port}")

    # Run the application
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=port)
