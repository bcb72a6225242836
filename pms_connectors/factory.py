"""
ChargeGuard PMS Connectors - Adapter Factory
Dynamic adapter discovery and initialization with capability validation
"""

import importlib
import inspect
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

import yaml

from .adapters.base import BaseAdapter, OAuthAdapterMixin, RestVendorAdapter
from .config import HubSettings
from .contracts import NotFoundError, PMSError, ValidationError
from .utils.logging import get_logger

logger = get_logger(__name__)

# Abstract bases living in adapters/base.py, never registered as vendors
_ABSTRACT_ADAPTERS = (BaseAdapter, RestVendorAdapter, OAuthAdapterMixin)


class ConnectorStatus(Enum):
    """Connector availability status"""

    AVAILABLE = "available"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"


@dataclass
class ConnectorMetadata:
    """Metadata about a PMS adapter"""

    vendor: str
    name: str
    category: str
    status: ConnectorStatus
    capabilities: Dict[str, bool]
    regions: List[str]
    rate_limits: Dict[str, int]
    authentication: str  # oauth2, api_key, body_token
    required_config: List[str] = field(default_factory=list)
    documentation_url: Optional[str] = None
    support_contact: Optional[str] = None


class ConnectorRegistry:
    """Registry of available PMS adapters, keyed by lower-case vendor name"""

    def __init__(self, matrix_path: Optional[Path] = None, discover: bool = True):
        self._connectors: Dict[str, Type[BaseAdapter]] = {}
        self._metadata: Dict[str, ConnectorMetadata] = {}
        self._capability_matrix: Dict[str, Any] = {}
        self._load_capability_matrix(matrix_path or Path(__file__).parent / "capability_matrix.yaml")
        if discover:
            self._discover_connectors()

    def _load_capability_matrix(self, matrix_path: Path):
        """Load capability matrix from YAML configuration"""
        if matrix_path.exists():
            with open(matrix_path, "r") as f:
                self._capability_matrix = yaml.safe_load(f) or {}
            logger.info(
                "capability_matrix_loaded",
                vendors=len(self._capability_matrix.get("vendors", {})),
            )
        else:
            logger.warning("capability_matrix_missing", path=str(matrix_path))
            self._capability_matrix = {"vendors": {}}

    def _discover_connectors(self):
        """Import every ``adapters/<vendor>/connector.py`` and register its adapter class"""
        adapters_path = Path(__file__).parent / "adapters"
        for vendor_dir in sorted(adapters_path.iterdir()):
            if not vendor_dir.is_dir() or vendor_dir.name.startswith("_"):
                continue
            if not (vendor_dir / "connector.py").exists():
                continue

            module_name = f"{__package__}.adapters.{vendor_dir.name}.connector"
            try:
                module = importlib.import_module(module_name)
            except ImportError as e:
                logger.error("connector_import_failed", vendor=vendor_dir.name, error=str(e))
                continue

            for _, obj in inspect.getmembers(module, inspect.isclass):
                if (
                    issubclass(obj, BaseAdapter)
                    and obj not in _ABSTRACT_ADAPTERS
                    and obj.__module__ == module.__name__
                ):
                    self._register_connector(vendor_dir.name, obj)
                    logger.info(
                        "connector_discovered", vendor=vendor_dir.name, adapter=obj.__name__
                    )

    def _vendor_config(self, vendor: str) -> Dict[str, Any]:
        return self._capability_matrix.get("vendors", {}).get(vendor, {})

    def _register_connector(self, vendor: str, connector_class: Type[BaseAdapter]):
        """Register an adapter with metadata from the capability matrix"""
        vendor = vendor.lower()
        self._connectors[vendor] = connector_class

        vendor_config = self._vendor_config(vendor)
        profile = getattr(connector_class, "profile", None)
        default_rpm = profile.requests_per_minute if profile is not None else 60

        self._metadata[vendor] = ConnectorMetadata(
            vendor=vendor,
            name=vendor_config.get(
                "display_name", profile.display_name if profile is not None else vendor.title()
            ),
            category=vendor_config.get("category", "enterprise"),
            status=ConnectorStatus(vendor_config.get("status", "available")),
            capabilities=vendor_config.get(
                "capabilities", dict(getattr(connector_class, "capabilities", {}))
            ),
            regions=vendor_config.get("regions", ["us-east-1"]),
            rate_limits=vendor_config.get("rate_limits", {"requests_per_minute": default_rpm}),
            authentication=vendor_config.get("authentication", "api_key"),
            required_config=list(vendor_config.get("required_config", ["hotel_id"])),
            documentation_url=vendor_config.get("documentation_url"),
            support_contact=vendor_config.get("support_contact"),
        )

    def register(
        self,
        vendor: str,
        connector_class: Type[BaseAdapter],
        metadata: Optional[ConnectorMetadata] = None,
    ):
        """Manually register an adapter"""
        vendor = vendor.lower()
        if metadata:
            self._connectors[vendor] = connector_class
            self._metadata[vendor] = metadata
        else:
            self._register_connector(vendor, connector_class)

    def _key(self, vendor: str) -> str:
        key = (vendor or "").lower()
        if key not in self._connectors:
            supported = ", ".join(self.supported_types())
            raise NotFoundError(
                f'No adapter available for PMS type: "{vendor}". Supported types: {supported}'
            )
        return key

    def get_connector_class(self, vendor: str) -> Type[BaseAdapter]:
        """Get adapter class by vendor name (case-insensitive)"""
        return self._connectors[self._key(vendor)]

    def get_metadata(self, vendor: str) -> ConnectorMetadata:
        """Get adapter metadata (case-insensitive)"""
        return self._metadata[self._key(vendor)]

    def is_supported(self, vendor: Optional[str]) -> bool:
        return bool(vendor) and vendor.lower() in self._connectors

    def supported_types(self) -> List[str]:
        """Upper-case type identifiers, e.g. ``HYATT_OPERA``"""
        return sorted(vendor.upper() for vendor in self._connectors)

    def list_vendors(self, status: Optional[ConnectorStatus] = None) -> List[str]:
        """List all registered vendors, optionally filtered by status"""
        if status:
            return [vendor for vendor, meta in self._metadata.items() if meta.status == status]
        return list(self._connectors.keys())

    def types_by_category(self, category: str) -> List[str]:
        return sorted(
            vendor.upper() for vendor, meta in self._metadata.items() if meta.category == category
        )

    def get_capability_matrix(self) -> Dict[str, Dict[str, bool]]:
        """Get capability matrix for all vendors"""
        return {vendor: meta.capabilities for vendor, meta in self._metadata.items()}

    def find_vendors_with_capability(self, capability: str) -> List[str]:
        """Find vendors that support a specific capability"""
        return [
            vendor
            for vendor, meta in self._metadata.items()
            if meta.capabilities.get(capability, False)
        ]


# Global registry instance
_registry = ConnectorRegistry()


class ConnectorFactory:
    """Factory for creating PMS adapter instances, cached per vendor and hotel"""

    def __init__(
        self,
        registry: Optional[ConnectorRegistry] = None,
        settings: Optional[HubSettings] = None,
    ):
        self.registry = registry or _registry
        self.settings = settings
        self._instances: Dict[str, BaseAdapter] = {}

    @staticmethod
    def _instance_key(vendor: str, hotel_id: Any) -> str:
        return f"{vendor.lower()}:{hotel_id or 'default'}"

    def create(self, vendor: str, config: Dict[str, Any]) -> BaseAdapter:
        """
        Create (or reuse) an adapter instance for the vendor.

        The instance is not yet authenticated; call ``authenticate()`` or use
        it as an async context manager.

        Raises:
            NotFoundError: vendor is not supported
            ValidationError: required configuration is missing
            PMSError: vendor is unavailable or the adapter failed to initialize
        """
        connector_class = self.registry.get_connector_class(vendor)
        metadata = self.registry.get_metadata(vendor)

        if metadata.status == ConnectorStatus.UNAVAILABLE:
            raise PMSError(f"Connector {vendor} is currently unavailable", vendor=metadata.vendor)

        if metadata.status == ConnectorStatus.MAINTENANCE:
            logger.warning("connector_in_maintenance", vendor=metadata.vendor)

        self._validate_config(metadata, config)

        instance_key = self._instance_key(vendor, config.get("hotel_id"))
        if instance_key not in self._instances:
            try:
                instance = connector_class(dict(config), self.settings)
            except (KeyError, TypeError, ValueError) as e:
                logger.error("connector_create_failed", vendor=metadata.vendor, error=str(e))
                raise PMSError(
                    f"Failed to initialize {metadata.vendor} connector: {e}",
                    vendor=metadata.vendor,
                ) from e
            self._instances[instance_key] = instance
            logger.info("connector_created", instance=instance_key)

        return self._instances[instance_key]

    def _validate_config(self, metadata: ConnectorMetadata, config: Dict[str, Any]):
        """Check the capability matrix's required_config keys are present and non-empty"""
        missing = [key for key in metadata.required_config if not config.get(key)]
        if missing:
            raise ValidationError(
                f"Missing required configuration for {metadata.vendor}: {missing}",
                field=missing[0],
                vendor=metadata.vendor,
            )

    def get_instance(self, vendor: str, hotel_id: str) -> Optional[BaseAdapter]:
        """Get existing adapter instance"""
        return self._instances.get(self._instance_key(vendor, hotel_id))

    async def close_all(self):
        """Close all adapter instances"""
        for instance_key, connector in self._instances.items():
            try:
                await connector.close()
                logger.info("connector_closed", instance=instance_key)
            except Exception as e:
                logger.error("connector_close_failed", instance=instance_key, error=str(e))

        self._instances.clear()


# Convenience functions
def get_connector(vendor: str, config: Dict[str, Any]) -> BaseAdapter:
    """Get an adapter instance for the specified vendor"""
    factory = ConnectorFactory()
    return factory.create(vendor, config)


def list_available_connectors() -> List[str]:
    """List all available connector vendors"""
    return _registry.list_vendors(ConnectorStatus.AVAILABLE)


def get_connector_metadata(vendor: str) -> ConnectorMetadata:
    """Get metadata for a specific vendor"""
    return _registry.get_metadata(vendor)


def get_capability_matrix() -> Dict[str, Dict[str, bool]]:
    """Get the capability matrix for all vendors"""
    return _registry.get_capability_matrix()


def find_connectors_with_capability(capability: str) -> List[str]:
    """Find all connectors that support a specific capability"""
    return _registry.find_vendors_with_capability(capability)


def get_supported_types() -> List[str]:
    return _registry.supported_types()


def is_supported(pms_type: Optional[str]) -> bool:
    """Case-insensitive support check"""
    return _registry.is_supported(pms_type)


def get_types_by_category(category: str) -> List[str]:
    """PMS types in a category: enterprise, boutique, vacation_rental or brand"""
    return _registry.types_by_category(category)


# Allow manual registration for testing
def register_connector(
    vendor: str,
    connector_class: Type[BaseAdapter],
    metadata: Optional[ConnectorMetadata] = None,
):
    """Register a custom connector"""
    _registry.register(vendor, connector_class, metadata)
