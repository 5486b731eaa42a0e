from .google_client import GoogleCalendarClient, GoogleConfig, TokenGrant
from .oauth_state import sign_state, verify_state
from .reconciler import CalendarReconciler, SyncSummary
from .transformers import event_to_google, google_to_event_fields

__all__ = [
    "GoogleCalendarClient",
    "GoogleConfig",
    "TokenGrant",
    "sign_state",
    "verify_state",
    "CalendarReconciler",
    "SyncSummary",
    "event_to_google",
    "google_to_event_fields",
]
