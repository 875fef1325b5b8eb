"""credgate.core

Core primitives.

If a module needs to exist, it should probably depend only on this package.
"""

from .config import Config
from .database import Database, Transaction
from .exceptions import CredgateError
from .permissions import GlobalRole, ProjectKind, ProjectRole, Scope, SharingRole
from .time import parse_dt, utc_now

__all__ = [
    "Config",
    "CredgateError",
    "Database",
    "GlobalRole",
    "ProjectKind",
    "ProjectRole",
    "Scope",
    "SharingRole",
    "Transaction",
    "parse_dt",
    "utc_now",
]
