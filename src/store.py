"""
Business/Job Store

The in-memory, authoritative copy of the user's businesses. Every mutation
is applied to memory and then written to the active storage backend
(the remote database for a signed-in user, a local file for a guest).

DESIGN DECISION: Failures never crash the caller.
- A missing business or job makes the operation a no-op (warning log).
- A failed storage write is logged and audited; memory keeps the
  optimistic state and the next subscription snapshot reconciles it.
- A failed calendar call stores no event id ("not synced").
- An expired calendar session additionally triggers `on_session_expired`
  so the caller can ask the user to sign in again.

DESIGN DECISION: Session state (who is signed in, guest or not, which
business is selected) lives in an explicit SessionContext, never in
module globals.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

import structlog
from pydantic import BaseModel

from src.audit import AuditLogger, create_correlation_id
from src.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from src.models.business import (
    Business,
    Job,
    Label,
    OneOffSchedule,
    OtherExpense,
    OtherIncome,
    new_id,
    parse_day,
)
from src.scheduling import detach_occurrence, is_detachable, toggle_completion
from src.services.calendar import (
    CalendarError,
    CalendarNotConnectedError,
    GoogleCalendarService,
    SessionExpiredError,
)
from src.services.storage import (
    BusinessStorageInterface,
    Collection,
    StorageError,
    child_path,
)


logger = structlog.get_logger(__name__)

EntryData = Union[dict[str, Any], BaseModel]

# Business attribute holding each child collection
_ATTRIBUTES = {
    Collection.JOBS: "jobs",
    Collection.OTHER_INCOMES: "other_incomes",
    Collection.OTHER_EXPENSES: "other_expenses",
    Collection.LABELS: "labels",
}


@dataclass
class SessionContext:
    """Who the store is working for."""
    user_id: Optional[str] = None
    is_guest: bool = True
    id_token: Optional[str] = None


class BusinessStore:
    """
    Owns the businesses and dispatches every mutation to storage.

    Usage:
        store = BusinessStore(SessionContext(is_guest=True), LocalBusinessStorage(path))
        await store.load()
        business = await store.add_business("Bakery")
        job = await store.add_job(business.id, {"title": "Deliver", "date": "2024-01-01"})
    """

    def __init__(
        self,
        context: SessionContext,
        storage: BusinessStorageInterface,
        calendar: Optional[GoogleCalendarService] = None,
        audit_logger: Optional[AuditLogger] = None,
        on_session_expired: Optional[Callable[[], Any]] = None,
    ):
        self.context = context
        self._storage = storage
        self._calendar = calendar
        self._audit = audit_logger
        self._on_session_expired = on_session_expired
        self._businesses: list[Business] = []
        self._active_business_id: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def businesses(self) -> list[Business]:
        return list(self._businesses)

    def get_business(self, business_id: str) -> Optional[Business]:
        return next((b for b in self._businesses if b.id == business_id), None)

    @property
    def active_business(self) -> Optional[Business]:
        """The selected business, or the first one when none is selected."""
        if self._active_business_id:
            selected = self.get_business(self._active_business_id)
            if selected:
                return selected
        return self._businesses[0] if self._businesses else None

    def select_business(self, business_id: str) -> Optional[Business]:
        business = self.get_business(business_id)
        if business is None:
            logger.warning("business_not_found", business_id=business_id, action="select")
            return None
        self._active_business_id = business_id
        return business

    async def load(self) -> list[Business]:
        """Read every business from storage into memory."""
        try:
            self._businesses = await self._storage.load_businesses()
        except StorageError as e:
            logger.error("load_failed", error=str(e), is_guest=self.context.is_guest)
            await self._record_save_failure(None, "business", None, e)
        logger.info("businesses_loaded", count=len(self._businesses))
        return self.businesses

    def apply_snapshot(self, businesses: list[Business]) -> None:
        """Replace memory with a full snapshot delivered by the backend."""
        self._businesses = list(businesses)

    def start_sync(self) -> None:
        """Follow backend changes; every snapshot replaces memory."""
        if self._unsubscribe is None:
            self._unsubscribe = self._storage.subscribe(self.apply_snapshot)

    def stop_sync(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # =========================================================================
    # BUSINESSES
    # =========================================================================

    async def add_business(self, name: str) -> Business:
        """Create a business with empty collections."""
        try:
            business_id = await self._storage.create_business(name)
        except StorageError as e:
            business_id = new_id()
            logger.error("save_failed", entity_type="business", error=str(e))
            await self._record_save_failure(business_id, "business", business_id, e)

        business = self.get_business(business_id)
        if business is None:
            business = Business(id=business_id, name=name)
            self._businesses.append(business)

        await self._record(AuditEventBuilder.business_created(business_id, name))
        return business

    async def rename_business(self, business_id: str, name: str) -> Optional[Business]:
        business = self._require_business(business_id, "rename_business")
        if business is None:
            return None

        old_name = business.name
        business.name = name
        await self._persist(
            self._storage.update_business(business_id, {"name": name}),
            business_id, "business", business_id,
        )
        await self._record(AuditEventBuilder.business_renamed(business_id, old_name, name))
        return business

    async def delete_business(self, business_id: str) -> bool:
        """Delete a business, its children, and the calendar events of its jobs."""
        business = self._require_business(business_id, "delete_business")
        if business is None:
            return False

        for job in business.jobs:
            if job.google_calendar_event_id:
                await self._delete_calendar_event(business_id, job)

        self._businesses = [b for b in self._businesses if b.id != business_id]
        if self._active_business_id == business_id:
            self._active_business_id = None

        await self._persist(
            self._storage.delete_business(business_id),
            business_id, "business", business_id,
        )
        await self._record(
            AuditEventBuilder.business_deleted(business_id, business.name, len(business.jobs))
        )
        return True

    # =========================================================================
    # JOBS
    # =========================================================================

    async def add_job(
        self,
        business_id: str,
        data: EntryData,
        sync_to_calendar: bool = False,
    ) -> Optional[Job]:
        """
        Add a job. New jobs always start incomplete.

        With `sync_to_calendar`, a one-off job is also created as a
        calendar event; recurring jobs are never synced.
        """
        business = self._require_business(business_id, "add_job")
        if business is None:
            return None

        fields = _as_dict(data)
        for key in ("id", "completed", "completions", "googleCalendarEventId"):
            fields.pop(key, None)
        job = Job.model_validate({**fields, "completed": False, "google_calendar_event_id": None})

        if sync_to_calendar:
            event_id = await self._sync_calendar_event(business, job)
            job = job.model_copy(update={"google_calendar_event_id": event_id})

        job = await self._push(business_id, Collection.JOBS, job)
        await self._record(
            AuditEventBuilder.job_added(business_id, job.id, job.title, job.is_recurring)
        )
        return job

    async def edit_job(
        self,
        business_id: str,
        job: Job,
        sync_to_calendar: bool = False,
    ) -> Optional[Job]:
        """
        Replace a job with its edited version.

        Unticking `sync_to_calendar` removes an existing calendar event.
        """
        business = self._require_business(business_id, "edit_job")
        if business is None:
            return None
        if business.get_job(job.id) is None:
            logger.warning("job_not_found", business_id=business_id, job_id=job.id, action="edit_job")
            return None

        if sync_to_calendar:
            event_id = await self._sync_calendar_event(business, job)
            job = job.model_copy(update={"google_calendar_event_id": event_id})
        elif job.google_calendar_event_id:
            await self._delete_calendar_event(business_id, job)
            job = job.model_copy(update={"google_calendar_event_id": None})

        await self._write_job(business_id, job)
        await self._record(AuditEventBuilder.job_updated(business_id, job.id, job.title))
        return job

    async def delete_job(self, business_id: str, job_id: str) -> bool:
        business = self._require_business(business_id, "delete_job")
        if business is None:
            return False
        job = business.get_job(job_id)
        if job is None:
            logger.warning("job_not_found", business_id=business_id, job_id=job_id, action="delete_job")
            return False

        if job.google_calendar_event_id:
            await self._delete_calendar_event(business_id, job)

        business.jobs = [j for j in business.jobs if j.id != job_id]
        await self._persist(
            self._storage.remove_child(business_id, Collection.JOBS, job_id),
            business_id, "job", job_id,
        )
        await self._record(AuditEventBuilder.job_deleted(business_id, job_id, job.title))
        return True

    async def toggle_job_status(
        self,
        business_id: str,
        job_id: str,
        occurrence_date: Any,
    ) -> Optional[Job]:
        """
        Flip completion of one occurrence.

        A job already linked to a calendar event is re-synced.
        """
        business = self._require_business(business_id, "toggle_job_status")
        if business is None:
            return None
        job = business.get_job(job_id)
        if job is None:
            logger.warning(
                "job_not_found", business_id=business_id, job_id=job_id, action="toggle_job_status"
            )
            return None

        day = parse_day(occurrence_date)
        if day is None:
            logger.warning("invalid_occurrence_date", job_id=job_id, occurrence_date=str(occurrence_date))
            return job

        updated = toggle_completion(job, day)

        if updated.google_calendar_event_id:
            event_id = await self._sync_calendar_event(business, updated)
            updated = updated.model_copy(update={"google_calendar_event_id": event_id})

        await self._write_job(business_id, updated)

        await self._record(AuditEventBuilder.job_status_toggled(
            business_id, job_id, day.isoformat(), updated.schedule.is_complete_on(day)
        ))
        return updated

    async def detach_and_edit_occurrence(
        self,
        business_id: str,
        job_id: str,
        occurrence_date: Any,
        new_job_data: EntryData,
    ) -> Optional[Job]:
        """
        Turn one occurrence of a recurring job into its own standalone job.

        The exception on the original and the new job are written in a
        single multi-path update, so storage never holds only one half.

        Returns:
            The new standalone job, or None if nothing was detached
        """
        business = self._require_business(business_id, "detach_and_edit_occurrence")
        if business is None:
            return None
        job = business.get_job(job_id)
        if job is None:
            logger.warning(
                "job_not_found",
                business_id=business_id,
                job_id=job_id,
                action="detach_and_edit_occurrence",
            )
            return None

        day = parse_day(occurrence_date)
        if day is None:
            logger.warning("invalid_occurrence_date", job_id=job_id, occurrence_date=str(occurrence_date))
            return None
        if not is_detachable(job, day):
            logger.warning("invalid_occurrence", job_id=job_id, occurrence_date=day.isoformat())
            return None

        updated, standalone = detach_occurrence(job, day, _as_dict(new_job_data))

        self._replace_child(business, Collection.JOBS, updated)
        self._replace_child(business, Collection.JOBS, standalone)

        await self._persist(
            self._storage.apply_updates({
                child_path(business_id, Collection.JOBS, job_id, "exceptions"): updated.exceptions,
                child_path(business_id, Collection.JOBS, standalone.id): standalone.to_document(),
            }),
            business_id, "job", job_id,
        )

        await self._record(AuditEventBuilder.occurrence_detached(
            business_id, job_id, day.isoformat(), standalone.id, create_correlation_id()
        ))
        return standalone

    # =========================================================================
    # OTHER INCOMES / EXPENSES / LABELS
    # =========================================================================

    async def add_other_income(self, business_id: str, data: EntryData) -> Optional[OtherIncome]:
        return await self._add_entry(business_id, Collection.OTHER_INCOMES, data)

    async def edit_other_income(self, business_id: str, income: OtherIncome) -> Optional[OtherIncome]:
        return await self._edit_entry(business_id, Collection.OTHER_INCOMES, income)

    async def delete_other_income(self, business_id: str, income_id: str) -> bool:
        return await self._delete_entry(business_id, Collection.OTHER_INCOMES, income_id)

    async def add_other_expense(self, business_id: str, data: EntryData) -> Optional[OtherExpense]:
        return await self._add_entry(business_id, Collection.OTHER_EXPENSES, data)

    async def edit_other_expense(
        self, business_id: str, expense: OtherExpense
    ) -> Optional[OtherExpense]:
        return await self._edit_entry(business_id, Collection.OTHER_EXPENSES, expense)

    async def delete_other_expense(self, business_id: str, expense_id: str) -> bool:
        return await self._delete_entry(business_id, Collection.OTHER_EXPENSES, expense_id)

    async def add_label(self, business_id: str, data: EntryData) -> Optional[Label]:
        return await self._add_entry(business_id, Collection.LABELS, data)

    async def edit_label(self, business_id: str, label: Label) -> Optional[Label]:
        return await self._edit_entry(business_id, Collection.LABELS, label)

    async def delete_label(self, business_id: str, label_id: str) -> bool:
        """
        Delete a label and clear it from every job that used it.

        The jobs themselves are kept.
        """
        business = self._require_business(business_id, "delete_label")
        if business is None:
            return False
        if business.get_label(label_id) is None:
            logger.warning("label_not_found", business_id=business_id, label_id=label_id)
            return False

        business.labels = [label for label in business.labels if label.id != label_id]
        cleared = []
        for index, job in enumerate(business.jobs):
            if job.label_id == label_id:
                business.jobs[index] = job.model_copy(update={"label_id": None})
                cleared.append(job.id)

        updates: dict[str, Any] = {child_path(business_id, Collection.LABELS, label_id): None}
        for job_id in cleared:
            updates[child_path(business_id, Collection.JOBS, job_id, "labelId")] = None

        await self._persist(
            self._storage.apply_updates(updates),
            business_id, "label", label_id,
        )
        await self._record(AuditEventBuilder.label_deleted(business_id, label_id, cleared))
        return True

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_business(self, business_id: str, action: str) -> Optional[Business]:
        business = self.get_business(business_id)
        if business is None:
            logger.warning("business_not_found", business_id=business_id, action=action)
        return business

    async def _add_entry(self, business_id: str, collection: Collection, data: EntryData):
        business = self._require_business(business_id, f"add_{collection.value}")
        if business is None:
            return None

        fields = _as_dict(data)
        fields.pop("id", None)
        entry = collection.model.model_validate(fields)
        entry = await self._push(business_id, collection, entry)
        await self._record_entry(AuditEventType.ENTRY_ADDED, business_id, collection, entry)
        return entry

    async def _edit_entry(self, business_id: str, collection: Collection, entry: BaseModel):
        business = self._require_business(business_id, f"edit_{collection.value}")
        if business is None:
            return None
        if not self._replace_child(business, collection, entry, must_exist=True):
            logger.warning(
                "entry_not_found",
                business_id=business_id,
                collection=collection.value,
                entry_id=entry.id,
            )
            return None

        await self._persist(
            self._storage.update_child(
                business_id, collection, entry.id, entry.to_document(include_nulls=True)
            ),
            business_id, collection.value, entry.id,
        )
        await self._record_entry(AuditEventType.ENTRY_UPDATED, business_id, collection, entry)
        return entry

    async def _delete_entry(self, business_id: str, collection: Collection, entry_id: str) -> bool:
        business = self._require_business(business_id, f"delete_{collection.value}")
        if business is None:
            return False

        attribute = _ATTRIBUTES[collection]
        entries = getattr(business, attribute)
        entry = next((e for e in entries if e.id == entry_id), None)
        if entry is None:
            logger.warning(
                "entry_not_found",
                business_id=business_id,
                collection=collection.value,
                entry_id=entry_id,
            )
            return False

        setattr(business, attribute, [e for e in entries if e.id != entry_id])
        await self._persist(
            self._storage.remove_child(business_id, collection, entry_id),
            business_id, collection.value, entry_id,
        )
        await self._record_entry(AuditEventType.ENTRY_DELETED, business_id, collection, entry)
        return True

    async def _push(self, business_id: str, collection: Collection, entry):
        """
        Store a new child; the backend assigns its id.

        When the write fails the entry keeps its generated id in memory.
        """
        try:
            child_id = await self._storage.push_child(business_id, collection, entry.to_document())
            entry = entry.model_copy(update={"id": child_id})
        except StorageError as e:
            logger.error(
                "save_failed",
                business_id=business_id,
                entity_type=collection.value,
                error=str(e),
            )
            await self._record_save_failure(business_id, collection.value, entry.id, e)

        business = self.get_business(business_id)
        if business is not None:
            self._replace_child(business, collection, entry)
        return entry

    async def _write_job(self, business_id: str, job: Job) -> None:
        business = self.get_business(business_id)
        if business is not None:
            self._replace_child(business, Collection.JOBS, job)
        await self._persist(
            self._storage.update_child(
                business_id, Collection.JOBS, job.id, job.to_document(include_nulls=True)
            ),
            business_id, "job", job.id,
        )

    @staticmethod
    def _replace_child(
        business: Business,
        collection: Collection,
        entry: BaseModel,
        must_exist: bool = False,
    ) -> bool:
        """Replace the child with the same id, or append it."""
        entries = getattr(business, _ATTRIBUTES[collection])
        for index, existing in enumerate(entries):
            if existing.id == entry.id:
                entries[index] = entry
                return True
        if must_exist:
            return False
        entries.append(entry)
        return True

    async def _persist(
        self,
        write: Awaitable[None],
        business_id: Optional[str],
        entity_type: str,
        entity_id: Optional[str],
    ) -> bool:
        try:
            await write
            return True
        except StorageError as e:
            logger.error(
                "save_failed",
                business_id=business_id,
                entity_type=entity_type,
                entity_id=entity_id,
                error=str(e),
            )
            await self._record_save_failure(business_id, entity_type, entity_id, e)
            return False

    @property
    def _calendar_enabled(self) -> bool:
        return self._calendar is not None and not self.context.is_guest

    async def _sync_calendar_event(self, business: Business, job: Job) -> Optional[str]:
        """
        Create or update the job's calendar event.

        Returns the event id, or None when the job is not (or could not be) synced.
        """
        if not isinstance(job.schedule, OneOffSchedule):
            return job.google_calendar_event_id
        if not self._calendar_enabled:
            logger.info("calendar_sync_skipped", job_id=job.id, is_guest=self.context.is_guest)
            return None

        try:
            event_id = await self._calendar.upsert_event(job, business.name)
        except CalendarError as e:
            await self._handle_calendar_error(business.id, job.id, e)
            return None

        await self._record(AuditEventBuilder.calendar_synced(business.id, job.id, event_id))
        return event_id

    async def _delete_calendar_event(self, business_id: str, job: Job) -> None:
        if not self._calendar_enabled:
            return
        try:
            await self._calendar.delete_event(job.google_calendar_event_id)
        except CalendarError as e:
            await self._handle_calendar_error(business_id, job.id, e)

    async def _handle_calendar_error(
        self,
        business_id: str,
        job_id: str,
        error: CalendarError,
    ) -> None:
        if isinstance(error, CalendarNotConnectedError):
            logger.warning("calendar_not_connected", job_id=job_id)
        else:
            logger.error("calendar_sync_failed", job_id=job_id, error=str(error))
        if self._audit:
            await self._audit.log_calendar_sync_failed(business_id, job_id, str(error))

        if isinstance(error, SessionExpiredError):
            await self._record(AuditEventBuilder.session_expired("google_calendar"))
            if self._on_session_expired is not None:
                self._on_session_expired()

    async def _record(self, event: AuditEvent) -> None:
        if self._audit:
            await self._audit.log(event)

    async def _record_entry(
        self,
        event_type: AuditEventType,
        business_id: str,
        collection: Collection,
        entry: BaseModel,
    ) -> None:
        if self._audit:
            await self._audit.log_entry_changed(
                event_type,
                business_id,
                collection.value,
                entry.id,
                getattr(entry, "title", ""),
            )

    async def _record_save_failure(
        self,
        business_id: Optional[str],
        entity_type: str,
        entity_id: Optional[str],
        error: Exception,
    ) -> None:
        if self._audit:
            await self._audit.log_save_failed(business_id, entity_type, entity_id, str(error))


def _as_dict(data: EntryData) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)
