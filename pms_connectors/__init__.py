"""
ChargeGuard PMS Connector Package

One adapter contract over many hotel Property Management Systems:
- common resilience, auth, normalization and webhook handling shared by all
- thin vendor-specific adapters under ``adapters/``
"""

from .factory import (
    get_connector,
    list_available_connectors,
    get_connector_metadata,
    get_capability_matrix,
    find_connectors_with_capability,
    register_connector,
    get_supported_types,
    is_supported,
    get_types_by_category,
    ConnectorFactory,
    ConnectorRegistry,
    ConnectorStatus,
    ConnectorMetadata,
)

from .contracts import (
    PMSAdapter,
    PMSError,
    AuthenticationError,
    RateLimitError,
    ValidationError,
    NotFoundError,
    TransientError,
    ServiceUnavailableError,
    Capabilities,
    # Domain models
    Reservation,
    FolioItem,
    GuestProfile,
    Rate,
    ReservationDocument,
    WebhookEvent,
    ReservationSearch,
    RateQuery,
    Note,
    GuestFlag,
    ChargebackAlert,
    DisputeOutcome,
    WebhookSubscriptionRequest,
)

from .config import HubSettings, get_settings

__all__ = [
    # Factory functions
    "get_connector",
    "list_available_connectors",
    "get_connector_metadata",
    "get_capability_matrix",
    "find_connectors_with_capability",
    "register_connector",
    "get_supported_types",
    "is_supported",
    "get_types_by_category",
    # Factory classes
    "ConnectorFactory",
    "ConnectorRegistry",
    "ConnectorStatus",
    "ConnectorMetadata",
    # Contract
    "PMSAdapter",
    # Errors
    "PMSError",
    "AuthenticationError",
    "RateLimitError",
    "ValidationError",
    "NotFoundError",
    "TransientError",
    "ServiceUnavailableError",
    # Enums
    "Capabilities",
    # Domain models
    "Reservation",
    "FolioItem",
    "GuestProfile",
    "Rate",
    "ReservationDocument",
    "WebhookEvent",
    "ReservationSearch",
    "RateQuery",
    "Note",
    "GuestFlag",
    "ChargebackAlert",
    "DisputeOutcome",
    "WebhookSubscriptionRequest",
    # Settings
    "HubSettings",
    "get_settings",
]
