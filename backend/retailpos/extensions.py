# Overview: Flask extension instances shared by the app factory, models, and services.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
