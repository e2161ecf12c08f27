from .automation_validator import (
    AutomationValidationError,
    UnknownRegistryTypeError,
    is_valid_automation,
    parse_and_validate_automation,
)
from .condition_ids import MigrationReport, ensure_internal_ids, migrate_internal_ids, normalize_config, regenerate_internal_ids

__all__ = [
    "AutomationValidationError",
    "MigrationReport",
    "UnknownRegistryTypeError",
    "ensure_internal_ids",
    "is_valid_automation",
    "migrate_internal_ids",
    "normalize_config",
    "parse_and_validate_automation",
    "regenerate_internal_ids",
]
