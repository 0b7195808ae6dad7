"""
Clic-Tools — Rack population wizard endpoints.

Each call rebuilds the wizard from the persisted session; the response carries
the full wizard state. Validation errors are 400, lock conflicts 409. Resume and
assignment failures come back as 200 with ``error`` set, since the returned
state is still valid.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status

from clictools.api.deps import PERM_WAREHOUSE_ACCESS, CurrentUser, DbSession, require_permission
from clictools.schemas.common import ApiResponse
from clictools.schemas.wizard import (
    AssignRequest,
    StartWizardRequest,
    WizardErrorKind,
    WizardOutcome,
    WizardStep,
)
from clictools.services.population_wizard import PopulationWizard

router = APIRouter()


def _respond(outcome: WizardOutcome) -> ApiResponse[WizardOutcome]:
    if outcome.error_kind == WizardErrorKind.VALIDATION:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=outcome.error)
    if outcome.error_kind == WizardErrorKind.CONFLICT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": outcome.error,
                "conflicts": [c.model_dump(mode="json") for c in outcome.conflicts],
                "levels": [l.model_dump(mode="json") for l in outcome.levels or []],
            },
        )
    return ApiResponse(data=outcome, error=outcome.error)


async def _restored(db: DbSession, user: CurrentUser) -> tuple[PopulationWizard, WizardOutcome | None]:
    """Wizard re-attached to the user's running session, or the failed outcome."""
    wizard = PopulationWizard(db, user.id, user.name)
    outcome = await wizard.restore()
    return wizard, (outcome if outcome.error else None)


@router.get("", response_model=ApiResponse[WizardOutcome])
async def load_wizard(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Initial state: ``resume`` when a session is on file, otherwise ``setup``."""
    return _respond(await PopulationWizard(db, user.id, user.name).load())


@router.get("/racks/{rack_id}/levels", response_model=ApiResponse[WizardOutcome])
async def select_rack(
    rack_id: int,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Levels of a rack with fresh lock indicators."""
    return _respond(await PopulationWizard(db, user.id, user.name).select_rack(rack_id))


@router.post("/start", response_model=ApiResponse[WizardOutcome])
async def start_wizard(
    body: StartWizardRequest,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Lock the selected levels and begin populating."""
    wizard = PopulationWizard(db, user.id, user.name)
    return _respond(await wizard.start(body.rack_id, body.level_ids))


@router.post("/resume", response_model=ApiResponse[WizardOutcome])
async def resume_wizard(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Continue the stored session where it was left."""
    wizard = PopulationWizard(db, user.id, user.name)
    loaded = await wizard.load()
    if loaded.error:
        return _respond(loaded)
    if wizard.state.step != WizardStep.RESUME:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="There is no session to resume.")
    return _respond(await wizard.resume())


@router.post("/abandon", response_model=ApiResponse[WizardOutcome])
async def abandon_wizard(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Drop the stored session and release its levels."""
    wizard = PopulationWizard(db, user.id, user.name)
    loaded = await wizard.load()
    if loaded.error:
        return _respond(loaded)
    return _respond(await wizard.abandon())


@router.post("/assign", response_model=ApiResponse[WizardOutcome])
async def assign_and_next(
    body: AssignRequest,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Assign a product to the current location (or skip when none is given) and advance."""
    wizard, failed = await _restored(db, user)
    if failed:
        return _respond(failed)
    return _respond(await wizard.assign_and_next(body.product_id, body.location_id))


@router.post("/skip", response_model=ApiResponse[WizardOutcome])
async def skip_location(
    db: DbSession,
    location_id: int | None = Query(None, description="Location the client believes is current"),
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    wizard, failed = await _restored(db, user)
    if failed:
        return _respond(failed)
    return _respond(await wizard.assign_and_next(None, location_id))


@router.post("/back", response_model=ApiResponse[WizardOutcome])
async def go_back(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    wizard, failed = await _restored(db, user)
    if failed:
        return _respond(failed)
    return _respond(await wizard.go_back())


@router.post("/finish", response_model=ApiResponse[WizardOutcome])
async def finish_wizard(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """End the run: clear the session and release the levels."""
    wizard, failed = await _restored(db, user)
    if failed:
        return _respond(failed)
    return _respond(await wizard.finish())
