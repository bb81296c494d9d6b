"""Postcard creation wizard.

Four linear steps (choose a memory, select photos, compose the message,
review) are followed by a ``SENT`` notification step that resets
after a short delay.

The state is a frozen ``WizardState`` (the current step plus an
immutable ``PostcardDraft``), and :func:`transition` is a pure function
from ``(state, event)`` to the next state. ``PostcardWizard`` wraps
that with the one side effect: submitting the postcard.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from wayfarer.integrations.backend import BackendClient
from wayfarer.models import (
    Entry,
    MediaAttachment,
    Postcard,
    PostcardRequest,
    Session,
    User,
    UserRef,
)
from wayfarer.shared.errors import BackendError, SessionRequiredError, WizardValidationError

logger = logging.getLogger(__name__)


class WizardStep(StrEnum):
    """Where the user is in the wizard."""

    CHOOSE_MEMORY = "choose_memory"
    SELECT_PHOTOS = "select_photos"
    COMPOSE_MESSAGE = "compose_message"
    REVIEW = "review"
    SENT = "sent"


STEP_ORDER: tuple[WizardStep, ...] = (
    WizardStep.CHOOSE_MEMORY,
    WizardStep.SELECT_PHOTOS,
    WizardStep.COMPOSE_MESSAGE,
    WizardStep.REVIEW,
)

STEP_LABELS: dict[WizardStep, str] = {
    WizardStep.CHOOSE_MEMORY: "Choose Memory",
    WizardStep.SELECT_PHOTOS: "Select Photos",
    WizardStep.COMPOSE_MESSAGE: "Add Message",
    WizardStep.REVIEW: "Review",
    WizardStep.SENT: "Sent",
}


class PostcardDraft(BaseModel):
    """Everything the user has entered so far.

    Fields accumulate across steps and survive backward navigation, except
    that choosing a different entry drops the photos picked from the old
    one. ``photos_entry_id`` records which entry the photos came from.
    """

    model_config = ConfigDict(frozen=True)

    journal_id: int | None = None
    entry_id: int | None = None
    photos: tuple[MediaAttachment, ...] = ()
    photos_entry_id: int | None = None
    recipient_id: int | None = None
    message: str = ""

    @property
    def photo_urls(self) -> list[str]:
        return [photo.url for photo in self.photos]

    @property
    def has_stale_photos(self) -> bool:
        """True when the selected photos came from a different entry."""
        return bool(self.photos) and self.photos_entry_id != self.entry_id

    def missing_fields(self) -> list[str]:
        missing = []
        if self.journal_id is None:
            missing.append("journal")
        if self.entry_id is None:
            missing.append("entry")
        if not self.photos:
            missing.append("photos")
        if self.recipient_id is None:
            missing.append("recipient")
        if not self.message.strip():
            missing.append("message")
        return missing


class WizardState(BaseModel):
    """Current step, the draft, and the outcome of the last send."""

    model_config = ConfigDict(frozen=True)

    step: WizardStep = WizardStep.CHOOSE_MEMORY
    draft: PostcardDraft = PostcardDraft()
    error: str | None = None
    sent_at: float | None = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectJournal:
    journal_id: int


@dataclass(frozen=True)
class SelectEntry:
    entry_id: int


@dataclass(frozen=True)
class TogglePhoto:
    photo: MediaAttachment


@dataclass(frozen=True)
class SetRecipient:
    recipient_id: int | None


@dataclass(frozen=True)
class SetMessage:
    message: str


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Reset:
    pass


WizardEvent = (
    SelectJournal | SelectEntry | TogglePhoto | SetRecipient | SetMessage | Next | Back | Reset
)


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------


def can_advance(state: WizardState) -> bool:
    """Completion predicate for the current step."""
    draft = state.draft
    if state.step == WizardStep.CHOOSE_MEMORY:
        return draft.journal_id is not None and draft.entry_id is not None
    if state.step == WizardStep.SELECT_PHOTOS:
        return bool(draft.photos)
    if state.step == WizardStep.COMPOSE_MESSAGE:
        return draft.recipient_id is not None and bool(draft.message.strip())
    return False


def _toggle(photos: tuple[MediaAttachment, ...], photo: MediaAttachment) -> tuple[MediaAttachment, ...]:
    if any(p.id == photo.id for p in photos):
        return tuple(p for p in photos if p.id != photo.id)
    return (*photos, photo)


def _edit(state: WizardState, **changes: object) -> WizardState:
    return state.model_copy(
        update={"draft": state.draft.model_copy(update=changes), "error": None}
    )


def transition(state: WizardState, event: WizardEvent) -> WizardState:
    """Apply *event* to *state* and return the resulting state.

    Events that do not apply to the current step, and ``Next`` while
    the step is incomplete, return *state* unchanged.
    """
    step = state.step
    draft = state.draft

    if isinstance(event, Reset):
        return WizardState()

    if isinstance(event, Next):
        if not can_advance(state):
            return state
        following = STEP_ORDER[STEP_ORDER.index(step) + 1]
        return state.model_copy(update={"step": following, "error": None})

    if isinstance(event, Back):
        if step not in STEP_ORDER or step == STEP_ORDER[0]:
            return state
        previous = STEP_ORDER[STEP_ORDER.index(step) - 1]
        return state.model_copy(update={"step": previous, "error": None})

    if isinstance(event, SelectJournal) and step == WizardStep.CHOOSE_MEMORY:
        if event.journal_id == draft.journal_id:
            return state
        # The entry belongs to the old journal; later fields are kept.
        return _edit(state, journal_id=event.journal_id, entry_id=None)

    if isinstance(event, SelectEntry) and step == WizardStep.CHOOSE_MEMORY:
        if draft.journal_id is None or event.entry_id == draft.entry_id:
            return state
        if event.entry_id == draft.photos_entry_id:
            return _edit(state, entry_id=event.entry_id)
        # Photos are picked from one entry; a different entry starts over.
        return _edit(state, entry_id=event.entry_id, photos=(), photos_entry_id=None)

    if isinstance(event, TogglePhoto) and step == WizardStep.SELECT_PHOTOS:
        photos = _toggle(draft.photos, event.photo)
        return _edit(state, photos=photos, photos_entry_id=draft.entry_id if photos else None)

    if isinstance(event, SetRecipient) and step == WizardStep.COMPOSE_MESSAGE:
        return _edit(state, recipient_id=event.recipient_id)

    if isinstance(event, SetMessage) and step == WizardStep.COMPOSE_MESSAGE:
        return _edit(state, message=event.message)

    logger.debug("Ignoring %s on step %s", type(event).__name__, step)
    return state


def build_postcard_request(draft: PostcardDraft, sender_id: int) -> PostcardRequest:
    """Validate *draft* and turn it into the creation payload.

    Raises:
        WizardValidationError: If a required field is missing, the photos
            were picked from another entry, or the recipient is the sender.
    """
    missing = draft.missing_fields()
    if missing:
        raise WizardValidationError(missing)
    if draft.has_stale_photos:
        raise WizardValidationError(
            ["photos"], "The selected photos do not belong to the selected entry"
        )
    if draft.recipient_id == sender_id:
        raise WizardValidationError(["recipient"], "You cannot send a postcard to yourself")
    return PostcardRequest(
        sender=UserRef(id=sender_id),
        receiver=UserRef(id=draft.recipient_id),
        description=draft.message,
        photo_urls=draft.photo_urls,
    )


def photo_choices(entry: Entry) -> list[MediaAttachment]:
    """Attachments of *entry* that can go on a postcard."""
    return entry.photos


def recipient_choices(users: Iterable[User], current_user_id: int) -> list[User]:
    """Everyone except the sender."""
    return [user for user in users if user.id != current_user_id]


# ---------------------------------------------------------------------------
# Stateful wrapper
# ---------------------------------------------------------------------------


class PostcardWizard:
    """Holds the wizard state and performs the send.

    Args:
        client: Backend client used for submission.
        session: The logged-in session; its user is the sender.
        reset_delay: Seconds the ``SENT`` step lasts before resetting.
        clock: Monotonic time source.
        state: Starting state (defaults to a fresh wizard).
    """

    def __init__(
        self,
        client: BackendClient,
        session: Session | None,
        *,
        reset_delay: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        state: WizardState | None = None,
    ) -> None:
        self._client = client
        self._session = session
        self._reset_delay = reset_delay
        self._clock = clock
        self._state = state or WizardState()

    @property
    def state(self) -> WizardState:
        return self._state

    @property
    def step(self) -> WizardStep:
        return self._state.step

    @property
    def draft(self) -> PostcardDraft:
        return self._state.draft

    def can_advance(self) -> bool:
        return can_advance(self._state)

    def dispatch(self, event: WizardEvent) -> WizardState:
        self._state = transition(self._state, event)
        return self._state

    def send(self) -> Postcard:
        """Submit the postcard from the review step.

        Validation happens before any network call. On success the
        wizard moves to ``SENT``; on a backend failure it stays on
        ``REVIEW`` with the error recorded and the exception re-raised.
        There is no automatic retry.
        """
        if self._session is None:
            raise SessionRequiredError("You must be logged in to send a postcard")
        if self._state.step != WizardStep.REVIEW:
            raise WizardValidationError(
                self._state.draft.missing_fields(),
                "Postcards can only be sent from the review step",
            )

        draft = self._state.draft
        request = build_postcard_request(draft, self._session.user.id)

        try:
            postcard = self._client.create_postcard(request)
        except BackendError as exc:
            self._state = self._state.model_copy(update={"error": exc.message})
            raise

        logger.info("Postcard %s sent to user %s", postcard.id, draft.recipient_id)
        self._state = WizardState(step=WizardStep.SENT, draft=draft, sent_at=self._clock())
        return postcard

    def reset_if_due(self) -> bool:
        """Reset after the ``SENT`` notification has been shown long enough."""
        if self._state.step != WizardStep.SENT or self._state.sent_at is None:
            return False
        if self._clock() - self._state.sent_at < self._reset_delay:
            return False
        self._state = WizardState()
        return True
