"""credgate: credential access control and secret redaction.

Who may read a credential, who may use it, who owns it, and what a caller is
allowed to see of it. Everything else is somebody else's problem.
"""

from __future__ import annotations

__all__ = [
    "__version__",
]

__version__ = "1.0.0"
