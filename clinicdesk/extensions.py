from celery import Celery
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_bcrypt import Bcrypt

# Shared database, migration, hashing and task-queue instances
db = SQLAlchemy()
migrate = Migrate()
bcrypt = Bcrypt()
celery = Celery(__name__)
