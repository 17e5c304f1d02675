"""
Workhub persistence layer.

The shared ``db`` handle is created here and bound to the app in
``workhub.create_app``; model modules import it from this package.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
