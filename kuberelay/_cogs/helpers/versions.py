"""
Detecting the package's own version.

The version is determined only once at startup when the code is loaded.
"""
from typing import Optional

version: Optional[str] = None

try:
    import importlib.metadata
except ImportError:
    pass
else:
    try:
        name, *_ = __name__.split('.')  # usually "kuberelay", unless renamed/forked.
        version = importlib.metadata.version(name)
    except Exception:
        pass  # not installed, e.g. used from a source tree.
