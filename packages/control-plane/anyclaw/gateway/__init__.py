from .orchestrator import GatewayOrchestrator, OrchestratorOptions
from .ports import PortAllocator
from .profiles import ProfileManager, ProfileOptions
from .supervisor import ServiceSupervisor, SupervisorOptions

__all__ = [
    "GatewayOrchestrator",
    "OrchestratorOptions",
    "PortAllocator",
    "ProfileManager",
    "ProfileOptions",
    "ServiceSupervisor",
    "SupervisorOptions",
]
