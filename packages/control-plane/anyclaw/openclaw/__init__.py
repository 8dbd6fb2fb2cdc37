from .cli import CliOptions, OpenClawCli
from .config_editor import ConfigEditor
from .provisioner import AgentProvisioner, ProvisionerOptions
from .workspace import AgentWorkspaceBuilder

__all__ = [
    "AgentProvisioner",
    "AgentWorkspaceBuilder",
    "CliOptions",
    "ConfigEditor",
    "OpenClawCli",
    "ProvisionerOptions",
]
