"""Clic-Tools — Population wizard schemas."""
from enum import Enum

from pydantic import BaseModel, Field

from clictools.schemas.location import LevelOption, LocationRead, LockedLocation


class WizardStep(str, Enum):
    SETUP = "setup"
    RESUME = "resume"
    POPULATING = "populating"
    FINISHED = "finished"


class WizardSessionData(BaseModel):
    """Persisted, resumable progress of one user's run."""

    rack_id: int
    level_ids: list[int]
    current_index: int = Field(0, ge=0)


class LastAssignment(BaseModel):
    location_id: int
    location_path: str
    product_id: str
    product_description: str


class WizardState(BaseModel):
    """Everything the wizard knows about the current run."""

    step: WizardStep = WizardStep.SETUP
    rack_id: int | None = None
    level_ids: list[int] = []
    locations: list[LocationRead] = []  # leaves to populate, natural order by code
    current_index: int = 0
    current_path: str | None = None
    last_assignment: LastAssignment | None = None
    pending_session: WizardSessionData | None = None  # set while step == resume

    @property
    def current_location(self) -> LocationRead | None:
        if 0 <= self.current_index < len(self.locations):
            return self.locations[self.current_index]
        return None

    def to_session(self) -> WizardSessionData:
        return WizardSessionData(
            rack_id=self.rack_id,
            level_ids=list(self.level_ids),
            current_index=self.current_index,
        )


class WizardErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    ASSIGNMENT = "assignment"
    RESUME = "resume"
    PERSISTENCE = "persistence"


class WizardOutcome(BaseModel):
    state: WizardState
    error: str | None = None
    error_kind: WizardErrorKind | None = None
    conflicts: list[LockedLocation] = []
    levels: list[LevelOption] | None = None


# --- Requests ---

class StartWizardRequest(BaseModel):
    rack_id: int | None = None
    level_ids: list[int] = []


class AssignRequest(BaseModel):
    product_id: str | None = None
    location_id: int | None = None  # leaf the client believes is current
