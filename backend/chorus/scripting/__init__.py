from .sandbox import LuaSandbox
from .storage import ModuleStorage

__all__ = ["LuaSandbox", "ModuleStorage"]
