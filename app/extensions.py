"""
Central place for Flask extensions.

Avoids circular imports; extensions are bound to the app in create_app().
"""


from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
