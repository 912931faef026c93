"""
Declarative base shared by the profile, day pass and webhook audit models.

Kept free of model imports so models, repositories and the Alembic baseline
can all import it without cycles.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
