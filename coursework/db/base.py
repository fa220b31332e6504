from coursework.db.base_class import Base

# import models so Base.metadata knows every table
from coursework.models import assignment, notification, submission, user  # noqa: F401

__all__ = ["Base"]
