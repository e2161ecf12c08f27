import logging
from typing import TYPE_CHECKING, Any, Dict, List

from models import ActionResult, ArmedState

from .base import ActionHandler, first_param

if TYPE_CHECKING:
    from db.site import SiteRepository

logger = logging.getLogger(__name__)

SPECIFIC_AREAS = "SPECIFIC_AREAS"
ALL_AREAS_IN_SCOPE = "ALL_AREAS_IN_SCOPE"


class AreaArmingHandler(ActionHandler):
    """
    armArea / disarmArea. Setting an armed state is absolute, so repeating it
    is harmless.
    """

    def __init__(self, site_repository: "SiteRepository", target_state: ArmedState) -> None:
        self._sites = site_repository
        self._target_state = target_state

    def is_retryable(self, params: Dict[str, Any]) -> bool:
        return True

    def _target_areas(self, params: Dict[str, Any]) -> List[str]:
        scoping = str(params.get("scoping") or SPECIFIC_AREAS).upper()
        if scoping == ALL_AREAS_IN_SCOPE:
            location_id = first_param(params, "locationId")
            if not location_id:
                raise ValueError("ALL_AREAS_IN_SCOPE requires locationId")
            return [area.id for area in self._sites.list_areas(str(location_id))]
        area_ids = params.get("targetAreaIds") or []
        if isinstance(area_ids, str):
            area_ids = [part.strip() for part in area_ids.split(",") if part.strip()]
        return [str(area_id) for area_id in area_ids]

    def execute(self, params: Dict[str, Any]) -> ActionResult:
        try:
            area_ids = self._target_areas(params)
        except ValueError as exc:
            return ActionResult(success=False, error=str(exc))
        if not area_ids:
            return ActionResult(success=False, error="No target areas")

        updated, missing = [], []
        for area_id in area_ids:
            if self._sites.set_area_armed_state(area_id, self._target_state) is None:
                missing.append(area_id)
            else:
                updated.append(area_id)
        logger.info("Set %d area(s) to %s", len(updated), self._target_state.value)
        result = {"state": self._target_state.value, "updatedAreaIds": updated, "missingAreaIds": missing}
        if missing:
            return ActionResult(success=False, result_data=result, error=f"Unknown areas: {', '.join(missing)}")
        return ActionResult(success=True, result_data=result)
