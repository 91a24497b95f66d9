# Overview: Flask extension instances for the Local Store and the data-store adapter.

from flask_sqlalchemy import SQLAlchemy

from .services.database_adapter import DatabaseAdapter

db = SQLAlchemy()
datastore = DatabaseAdapter()
