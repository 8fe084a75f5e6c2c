"""
PrintFlow models package.

The shared Flask-SQLAlchemy handle lives here so every model module can do
``from printflow.models import db``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
