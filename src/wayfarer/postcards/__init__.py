"""Postcard wizard and inbox."""

from wayfarer.postcards.inbox import received_postcards, sent_postcards  # noqa: F401
from wayfarer.postcards.wizard import (  # noqa: F401
    PostcardDraft,
    PostcardWizard,
    WizardState,
    WizardStep,
    can_advance,
    transition,
)
