from .jobs import JobStore, USER_INDEX

__all__ = ["JobStore", "USER_INDEX"]
