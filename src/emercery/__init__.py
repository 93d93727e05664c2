"""emercery - Async core for an emergency-dispatch simulation dashboard."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("emercery")
except PackageNotFoundError:
    __version__ = "0+local"
from emercery._cache import ResourceCache
from emercery._metrics import ErrorCategory, ErrorTracker, LogBuffer, PerformanceMonitor
from emercery.client import EmerceryClient
from emercery.config import EmerceryConfig
from emercery.exceptions import (
    EmerceryApiError,
    EmerceryClientError,
    EmerceryConfigError,
    EmerceryError,
    EmerceryNetworkError,
    EmerceryServerError,
    EmerceryTimeoutError,
    EmerceryValidationError,
)
from emercery.models import (
    AutoDispatchStatus,
    ControlStatus,
    DispatchRequest,
    EmergencyCall,
    EmergencyRequest,
    EmergencyResource,
    EmergencyType,
    HealthState,
    HealthStatus,
    Location,
    ResourceAvailability,
    SimulationConfig,
    SimulationState,
    SystemStatus,
)
from emercery.orchestrator import DashboardState, PollingOrchestrator
from emercery.polling import Poller
from emercery.recovery import SessionRecoveryManager
from emercery.session import SessionSnapshot
from emercery.state import DispatchOutcome, DispatchStateStore
from emercery.storage import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "__version__",
    "AutoDispatchStatus",
    "ControlStatus",
    "DashboardState",
    "DispatchOutcome",
    "DispatchRequest",
    "DispatchStateStore",
    "EmerceryApiError",
    "EmerceryClient",
    "EmerceryClientError",
    "EmerceryConfig",
    "EmerceryConfigError",
    "EmerceryError",
    "EmerceryNetworkError",
    "EmerceryServerError",
    "EmerceryTimeoutError",
    "EmerceryValidationError",
    "EmergencyCall",
    "EmergencyRequest",
    "EmergencyResource",
    "EmergencyType",
    "ErrorCategory",
    "ErrorTracker",
    "HealthState",
    "HealthStatus",
    "JsonFileStore",
    "KeyValueStore",
    "Location",
    "LogBuffer",
    "MemoryStore",
    "PerformanceMonitor",
    "Poller",
    "PollingOrchestrator",
    "ResourceAvailability",
    "ResourceCache",
    "SessionRecoveryManager",
    "SessionSnapshot",
    "SimulationConfig",
    "SimulationState",
    "SystemStatus",
]
