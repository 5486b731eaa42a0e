# API endpoint handlers for the community calendar
from .methods import (
    # Routes
    routes,
    health_routes,
    calendar_routes,
    event_routes,
    sync_routes,
    integration_routes,
    oauth_routes,
    # Request utilities
    get_user_id,
    get_now,
    get_request_body,
    get_query_params,
    # Handler wrapper
    api_handler,
    # Handlers
    health,
    calendar_get,
    events_list,
    events_insert,
    events_get,
    events_patch,
    events_delete,
    events_occurrences,
    sync_google_post,
    sync_google_get,
    integrations_list,
    integrations_insert,
    integrations_patch,
    integrations_delete,
    google_auth_start,
    google_auth_callback,
)

__all__ = [
    # Routes
    "routes",
    "health_routes",
    "calendar_routes",
    "event_routes",
    "sync_routes",
    "integration_routes",
    "oauth_routes",
    # Request utilities
    "get_user_id",
    "get_now",
    "get_request_body",
    "get_query_params",
    # Handler wrapper
    "api_handler",
    # Handlers
    "health",
    "calendar_get",
    "events_list",
    "events_insert",
    "events_get",
    "events_patch",
    "events_delete",
    "events_occurrences",
    "sync_google_post",
    "sync_google_get",
    "integrations_list",
    "integrations_insert",
    "integrations_patch",
    "integrations_delete",
    "google_auth_start",
    "google_auth_callback",
]
