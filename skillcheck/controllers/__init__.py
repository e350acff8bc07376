"""FastAPI routers acting as controllers in the MVC architecture."""

from . import assessments

__all__ = ["assessments"]
