"""
Session package.

- Session: live state of the one connection this process serves
- TerminalAdapter: the terminal the game draws on and reads from
- SessionManager: save isolation, name locking and SysOp rights
"""

from .manager import SessionManager, SysOpConfigStore
from .state import Session, SessionState
from .terminal import TerminalAdapter

__all__ = [
    'Session',
    'SessionState',
    'SessionManager',
    'SysOpConfigStore',
    'TerminalAdapter',
]
