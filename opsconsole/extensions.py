"""
Flask extension instances for the operations console.

Created unbound here and initialized in create_app() so that models, the
workflow service and blueprints can import them without circular imports.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
