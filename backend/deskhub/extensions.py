# Overview: Flask extension instances for the store client and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Bound to a single app in create_app(); sessions are scoped to the app context
# and removed on teardown.
db = SQLAlchemy()
migrate = Migrate()
