from .audit import AuditRecorder, determine_execution_status
from .conditions import evaluate, evaluate_leaf
from .context import ContextResolver
from .executor import ActionExecutor, ExecutionSummary
from .facts import MISSING, build_facts, resolve_path
from .matcher import TriggerMatcher
from .normalizer import EventNormalizer
from .pipeline import AutomationEngine
from .scheduler import SchedulerRunner
from .temporal import TemporalConditionEvaluator, in_time_window
from .tokens import TemplateResolver

__all__ = [
    "ActionExecutor",
    "AuditRecorder",
    "AutomationEngine",
    "ContextResolver",
    "EventNormalizer",
    "ExecutionSummary",
    "MISSING",
    "SchedulerRunner",
    "TemplateResolver",
    "TemporalConditionEvaluator",
    "TriggerMatcher",
    "build_facts",
    "determine_execution_status",
    "evaluate",
    "evaluate_leaf",
    "in_time_window",
    "resolve_path",
]
