"""miionet - local control of Xiaomi miIO devices over UDP."""

__version__ = "0.1.0"
__author__ = "miionet developers"

from .core.exceptions import MiioError
from .network import MiioNetwork
from .session import NO_PARAMS, DeviceSession
from .tokens import TokenStore

__all__ = [
    "__version__",
    "__author__",
    "DeviceSession",
    "MiioError",
    "MiioNetwork",
    "NO_PARAMS",
    "TokenStore",
]
