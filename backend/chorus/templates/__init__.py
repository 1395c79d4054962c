from .engine import TemplateEngine
from .helpers import INVOCATION_KEY, HelperRegistry, build_helpers

__all__ = ["INVOCATION_KEY", "HelperRegistry", "TemplateEngine", "build_helpers"]
