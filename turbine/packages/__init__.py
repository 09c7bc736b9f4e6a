"""Package layer — specs and the registry that installs and tracks them."""

from turbine.packages.models import PackageResult, PackageSpec, TriggerKind
from turbine.packages.registry import PackageRegistry

__all__ = [
    "PackageRegistry",
    "PackageResult",
    "PackageSpec",
    "TriggerKind",
]
