"""Architecture classification and infrastructure planning engine."""

from .builder import GraphBuilder
from .catalog import ModuleCatalog, load_catalog
from .classifier import PatternClassifier, classify
from .differ import PlanDiff, diff_plans
from .models import ArchitecturePattern, FeatureSignal, ProvisioningPlan, ResourceGraph
from .pipeline import Pipeline, PipelineResult, PipelineState
from .policy import PolicyValidator
from .scheduler import schedule

__all__ = [
    "ArchitecturePattern",
    "FeatureSignal",
    "GraphBuilder",
    "ModuleCatalog",
    "PatternClassifier",
    "Pipeline",
    "PipelineResult",
    "PipelineState",
    "PlanDiff",
    "PolicyValidator",
    "ProvisioningPlan",
    "ResourceGraph",
    "classify",
    "diff_plans",
    "load_catalog",
    "schedule",
]
