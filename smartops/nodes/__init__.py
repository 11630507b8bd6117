from .base import BlueprintRegistry, NodeBlueprint, NodeKind
from .builtin import AUTOMATION_BLUEPRINTS, register_builtin_nodes

__all__ = [
    "AUTOMATION_BLUEPRINTS",
    "BlueprintRegistry",
    "NodeBlueprint",
    "NodeKind",
    "register_builtin_nodes",
]
