from .runner import JobRunner
from .janitor import Janitor

__all__ = ["JobRunner", "Janitor"]
