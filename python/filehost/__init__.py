# ruff: noqa: F401
from .errors import FileHostError

try:
    from ._version import __version__  # type: ignore
except ImportError:
    __version__ = "0.0.0.dev0"
