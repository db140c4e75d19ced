from .session import ExplorerSession, ExplorerState
from .sorting import SortDirection, SortKey, sort_entries

__all__ = ["ExplorerSession", "ExplorerState", "SortDirection", "SortKey", "sort_entries"]
