"""
Clic-Tools — Guided rack population wizard.

State machine over ``setup -> (resume) -> populating -> finished``. Every
transition is a method returning a ``WizardOutcome``; the wizard state itself
is a plain pydantic value (``WizardState``) so the HTTP layer can return it as is.

Progress is persisted in ``wizard_sessions`` after every step so a run can be
resumed after the browser is closed. Levels stay locked for the whole run and
are released on finish or abandonment.
"""
import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clictools.models.location import Location, LocationType
from clictools.schemas.location import LevelOption, LocationRead, LockedLocation
from clictools.schemas.wizard import (
    LastAssignment,
    WizardErrorKind,
    WizardOutcome,
    WizardSessionData,
    WizardState,
    WizardStep,
)
from clictools.services.assignment_service import AssignmentService
from clictools.services.audit_service import (
    ACTION_ITEM_LOCATION_ASSIGNED,
    ACTION_WIZARD_ABANDONED,
    ACTION_WIZARD_FINISHED,
    ACTION_WIZARD_STARTED,
    log_audit,
)
from clictools.services.location_service import (
    LocationService,
    render_location_path,
    sort_by_code,
)
from clictools.services.lock_service import LockService
from clictools.services.product_service import ProductService
from clictools.services.wizard_session_service import WizardSessionService

logger = logging.getLogger(__name__)


class _ResumeFailed(Exception):
    pass


class PopulationWizard:
    """One user's population run. Build a new instance per request."""

    def __init__(self, db: AsyncSession, user_id: int, user_name: str, state: WizardState | None = None):
        self.db = db
        self.user_id = user_id
        self.user_name = user_name
        self.state = state or WizardState()

    # ── helpers ──────────────────────────────────────────────────────────────

    def _outcome(
        self,
        error: str | None = None,
        kind: WizardErrorKind | None = None,
        conflicts: list[LockedLocation] | None = None,
        levels: list[LevelOption] | None = None,
    ) -> WizardOutcome:
        return WizardOutcome(
            state=self.state.model_copy(deep=True),
            error=error,
            error_kind=kind,
            conflicts=conflicts or [],
            levels=levels,
        )

    def _invalid(self, message: str) -> WizardOutcome:
        return self._outcome(error=message, kind=WizardErrorKind.VALIDATION)

    async def _guarded(self, action: str, body: Callable[[], Awaitable[WizardOutcome]]) -> WizardOutcome:
        """Run a transition; persistence errors roll back the unit of work and restore the state."""
        snapshot = self.state.model_copy(deep=True)
        try:
            return await body()
        except SQLAlchemyError:
            logger.error("Wizard %s failed for user %s", action, self.user_id, exc_info=True)
            await self.db.rollback()
            self.state = snapshot
            return self._outcome(
                error="The operation could not be saved. Please try again.",
                kind=WizardErrorKind.PERSISTENCE,
            )

    def _level_option(self, loc: Location) -> LevelOption:
        held_by_other = bool(loc.is_locked) and loc.locked_by_user_id != self.user_id
        return LevelOption.model_validate(loc).model_copy(update={"selectable": not held_by_other})

    async def _refresh_current_path(self) -> None:
        current = self.state.current_location
        if current is None:
            self.state.current_path = None
            return
        all_locations = await LocationService.get_all_locations(self.db)
        self.state.current_path = render_location_path(current.id, all_locations)

    async def _leaves_for(self, level_ids: list[int]) -> list[LocationRead]:
        leaves = await LocationService.get_child_locations(self.db, level_ids)
        return [LocationRead.model_validate(l) for l in sort_by_code(leaves)]

    async def _save_progress(self) -> None:
        await WizardSessionService.save_wizard_session(self.db, self.user_id, self.state.to_session())

    # ── transitions ──────────────────────────────────────────────────────────

    async def load(self) -> WizardOutcome:
        """Initial transition: ``resume`` if a session is on file, else ``setup``."""
        async def body() -> WizardOutcome:
            session = await WizardSessionService.get_active_wizard_session(self.db, self.user_id)
            if session:
                self.state = WizardState(
                    step=WizardStep.RESUME,
                    pending_session=WizardSessionData(
                        rack_id=session.rack_id,
                        level_ids=list(session.level_ids),
                        current_index=session.current_index,
                    ),
                )
            else:
                self.state = WizardState()
            return self._outcome()

        return await self._guarded("load", body)

    async def select_rack(self, rack_id: int) -> WizardOutcome:
        """Pick a rack. Re-reads lock state so level availability is current."""
        async def body() -> WizardOutcome:
            if self.state.step != WizardStep.SETUP:
                return self._invalid("A rack can only be selected while setting up a run.")
            rack = await LocationService.get_by_id(self.db, rack_id)
            if not rack or rack.location_type != LocationType.RACK:
                return self._invalid("Select a valid rack.")
            levels = await LocationService.get_direct_children(self.db, rack_id)
            self.state.rack_id = rack_id
            self.state.level_ids = []
            return self._outcome(levels=[self._level_option(l) for l in levels])

        return await self._guarded("select_rack", body)

    async def start(self, rack_id: int | None, level_ids: list[int]) -> WizardOutcome:
        """``setup -> populating``: lock the levels, enumerate their leaves, persist a new session."""
        async def body() -> WizardOutcome:
            if self.state.step != WizardStep.SETUP:
                return self._invalid("The wizard is not in setup.")
            if not rack_id or not level_ids:
                return self._invalid("Select a rack and at least one level to continue.")
            if await WizardSessionService.get_active_wizard_session(self.db, self.user_id):
                return self._invalid("You already have a population session in progress. Resume or abandon it first.")

            rack = await LocationService.get_by_id(self.db, rack_id)
            if not rack or rack.location_type != LocationType.RACK:
                return self._invalid("Select a valid rack.")
            rack_levels = {l.id for l in await LocationService.get_direct_children(self.db, rack_id)}
            selected = list(dict.fromkeys(level_ids))
            if any(level_id not in rack_levels for level_id in selected):
                return self._invalid("Every selected level must belong to the selected rack.")

            self.state.rack_id = rack_id
            lock = await LockService.lock_entity(self.db, selected, self.user_name, self.user_id)
            if lock.locked:
                levels = await LocationService.get_direct_children(self.db, rack_id)
                return self._outcome(
                    error="Some of the selected levels are being populated by another user.",
                    kind=WizardErrorKind.CONFLICT,
                    conflicts=lock.conflicts,
                    levels=[self._level_option(l) for l in levels],
                )

            leaves = await self._leaves_for(selected)
            if not leaves:
                await LockService.release_lock(self.db, selected)
                return self._invalid("The selected levels have no locations to populate.")

            self.state = WizardState(
                step=WizardStep.POPULATING,
                rack_id=rack_id,
                level_ids=selected,
                locations=leaves,
                current_index=0,
            )
            await self._save_progress()
            await self._refresh_current_path()
            await log_audit(
                self.db, self.user_id, ACTION_WIZARD_STARTED,
                target_type="location", target_id=rack_id,
                payload={"level_ids": selected, "locations": len(leaves)},
            )
            logger.info(
                "Population session started by %s on rack %s, levels %s (%d locations)",
                self.user_name, rack_id, selected, len(leaves),
            )
            return self._outcome()

        return await self._guarded("start", body)

    async def _attach(self, session: WizardSessionData) -> None:
        """Rebuild a populating state from a stored session. Raises ``_ResumeFailed``."""
        level_ids = list(dict.fromkeys(session.level_ids))
        rack = await LocationService.get_by_id(self.db, session.rack_id)
        levels = await LocationService.get_by_ids(self.db, level_ids)
        if rack is None or not level_ids or len(levels) != len(level_ids):
            raise _ResumeFailed("The rack or levels of this session no longer exist.")

        busy = [l for l in levels if l.is_locked and l.locked_by_user_id != self.user_id]
        if busy:
            raise _ResumeFailed(
                "Levels of this session are now in use by "
                + ", ".join(sorted({l.locked_by or "another user" for l in busy}))
                + "."
            )
        released = [l.id for l in levels if not l.is_locked]
        if released:
            # lock was force-released by an administrator meanwhile; take it back
            lock = await LockService.lock_entity(self.db, released, self.user_name, self.user_id)
            if lock.locked:
                raise _ResumeFailed("Levels of this session are now in use by another user.")

        leaves = await self._leaves_for(level_ids)
        if not leaves:
            raise _ResumeFailed("The levels of this session no longer contain locations to populate.")

        self.state = WizardState(
            step=WizardStep.POPULATING,
            rack_id=session.rack_id,
            level_ids=level_ids,
            locations=leaves,
            current_index=min(session.current_index, len(leaves) - 1),
            last_assignment=self.state.last_assignment,
        )
        await self._refresh_current_path()

    async def _discard_stale(self, session: WizardSessionData, reason: str) -> WizardOutcome:
        """Clear an unusable session and release the levels this user still holds."""
        await WizardSessionService.clear_wizard_session(self.db, self.user_id)
        levels = await LocationService.get_by_ids(self.db, session.level_ids)
        mine = [l.id for l in levels if l.is_locked and l.locked_by_user_id == self.user_id]
        await LockService.release_lock(self.db, mine)
        logger.warning("Discarded stale population session of %s: %s", self.user_name, reason)
        self.state = WizardState()
        return self._outcome(
            error=f"The session could not be resumed and was discarded. {reason}",
            kind=WizardErrorKind.RESUME,
        )

    async def resume(self) -> WizardOutcome:
        """``resume -> populating``: re-derive the leaf list from the stored rack/levels."""
        async def body() -> WizardOutcome:
            if self.state.step != WizardStep.RESUME or self.state.pending_session is None:
                return self._invalid("There is no session to resume.")
            session = self.state.pending_session
            try:
                await self._attach(session)
            except _ResumeFailed as exc:
                return await self._discard_stale(session, str(exc))
            logger.info("Population session resumed by %s at index %d", self.user_name, self.state.current_index)
            return self._outcome()

        return await self._guarded("resume", body)

    async def restore(self) -> WizardOutcome:
        """Re-attach to the persisted session so a populating action can follow."""
        async def body() -> WizardOutcome:
            row = await WizardSessionService.get_active_wizard_session(self.db, self.user_id)
            if row is None:
                self.state = WizardState()
                return self._invalid("There is no population session in progress.")
            session = WizardSessionData(rack_id=row.rack_id, level_ids=list(row.level_ids), current_index=row.current_index)
            try:
                await self._attach(session)
            except _ResumeFailed as exc:
                return await self._discard_stale(session, str(exc))
            return self._outcome()

        return await self._guarded("restore", body)

    async def abandon(self) -> WizardOutcome:
        """``resume -> setup``: drop the stored session and release exactly its levels."""
        async def body() -> WizardOutcome:
            session = self.state.pending_session
            if session is None:
                row = await WizardSessionService.get_active_wizard_session(self.db, self.user_id)
                if row is not None:
                    session = WizardSessionData(
                        rack_id=row.rack_id, level_ids=list(row.level_ids), current_index=row.current_index
                    )
            if session is not None:
                await WizardSessionService.clear_wizard_session(self.db, self.user_id)
                await LockService.release_lock(self.db, session.level_ids)
                await log_audit(
                    self.db, self.user_id, ACTION_WIZARD_ABANDONED,
                    target_type="location", target_id=session.rack_id,
                    payload={"level_ids": session.level_ids, "current_index": session.current_index},
                )
                logger.info("Population session abandoned by %s (levels %s)", self.user_name, session.level_ids)
            self.state = WizardState()
            return self._outcome()

        return await self._guarded("abandon", body)

    async def assign_and_next(
        self,
        product_id: str | None = None,
        expected_location_id: int | None = None,
    ) -> WizardOutcome:
        """
        Assign ``product_id`` to the current leaf (or skip when None) and advance.

        A failed assignment leaves index and session untouched. Advancing past the
        last leaf finishes the run.
        """
        async def body() -> WizardOutcome:
            if self.state.step != WizardStep.POPULATING:
                return self._invalid("The wizard is not populating.")
            current = self.state.current_location
            if current is None:
                return self._invalid("There is no current location.")
            if expected_location_id is not None and expected_location_id != current.id:
                return self._invalid("The current location changed. Reload the wizard and try again.")

            code = (product_id or "").strip()
            if code:
                product = await ProductService.get_by_id(self.db, code)
                if product is None:
                    return self._invalid(f"Product {code} was not found.")
                # savepoint: a failed write must not undo locks taken earlier in this unit of work
                try:
                    async with self.db.begin_nested():
                        await AssignmentService.assign_item_to_location(
                            self.db, product.id, current.id, self.user_name
                        )
                except (SQLAlchemyError, ValueError) as exc:
                    logger.error(
                        "Assignment of %s to location %s failed for %s", code, current.id, self.user_name,
                        exc_info=True,
                    )
                    return self._outcome(error=f"Could not assign the product: {exc}", kind=WizardErrorKind.ASSIGNMENT)

                all_locations = await LocationService.get_all_locations(self.db)
                self.state.last_assignment = LastAssignment(
                    location_id=current.id,
                    location_path=render_location_path(current.id, all_locations),
                    product_id=product.id,
                    product_description=product.description,
                )
                await log_audit(
                    self.db, self.user_id, ACTION_ITEM_LOCATION_ASSIGNED,
                    target_type="location", target_id=current.id,
                    payload={"item_id": product.id},
                )

            next_index = self.state.current_index + 1
            if next_index < len(self.state.locations):
                self.state.current_index = next_index
                await self._save_progress()
                await self._refresh_current_path()
                return self._outcome()
            return await self._finish()

        return await self._guarded("assign", body)

    async def skip(self) -> WizardOutcome:
        return await self.assign_and_next(None)

    async def go_back(self) -> WizardOutcome:
        """Move one location back (never below 0). Assignments are not undone."""
        async def body() -> WizardOutcome:
            if self.state.step != WizardStep.POPULATING:
                return self._invalid("The wizard is not populating.")
            self.state.current_index = max(0, self.state.current_index - 1)
            await self._save_progress()
            await self._refresh_current_path()
            return self._outcome()

        return await self._guarded("back", body)

    async def _finish(self) -> WizardOutcome:
        await WizardSessionService.clear_wizard_session(self.db, self.user_id)
        await LockService.release_lock(self.db, self.state.level_ids)
        await log_audit(
            self.db, self.user_id, ACTION_WIZARD_FINISHED,
            target_type="location", target_id=self.state.rack_id,
            payload={"level_ids": self.state.level_ids, "current_index": self.state.current_index},
        )
        logger.info("Population session finished by %s (levels %s released)", self.user_name, self.state.level_ids)
        self.state.step = WizardStep.FINISHED
        self.state.current_path = None
        return self._outcome()

    async def finish(self) -> WizardOutcome:
        """``populating -> finished``: clear the session and release the levels."""
        async def body() -> WizardOutcome:
            if self.state.step != WizardStep.POPULATING:
                return self._invalid("The wizard is not populating.")
            return await self._finish()

        return await self._guarded("finish", body)

    def start_new(self) -> WizardOutcome:
        """``finished -> setup``."""
        self.state = WizardState()
        return self._outcome()
