from .base import Base
from .conversion import Conversion

__all__ = ["Base", "Conversion"]
