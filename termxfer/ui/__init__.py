from .controller import AppController, ConflictQuestion
from .log_buffer import LogBuffer
from .state import AppState, Pane, TransferRun

__all__ = ["AppController", "AppState", "ConflictQuestion", "LogBuffer", "Pane", "TransferRun"]
