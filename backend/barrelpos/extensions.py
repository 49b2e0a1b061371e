# Overview: Extension singletons bound to the app in create_app().

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Models import db from here; create_app() calls init_app on both.
db = SQLAlchemy()
migrate = Migrate(compare_type=True)
