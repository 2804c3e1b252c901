from .core import PosturographyWorkflow
from .stages import knowledge_base_tools

__all__ = ["PosturographyWorkflow", "knowledge_base_tools"]
