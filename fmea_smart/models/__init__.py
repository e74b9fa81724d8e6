"""
FMEA Smart System
SQLAlchemy database handle shared by all model modules.

Usage:
    from fmea_smart.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
