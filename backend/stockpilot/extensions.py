# Overview: Flask extension instances shared by models, services and the CLI.
#
# The SQLAlchemy session bound to `db` is scoped to the Flask app/request
# context; every request gets its own session and transaction.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
