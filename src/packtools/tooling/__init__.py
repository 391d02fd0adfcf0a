"""Tool invocation public surface."""

from packtools.tooling.process import (
    LocalProcessRunner,
    ProcessRequest,
    ProcessResult,
    ProcessRunner,
    minimal_env,
)
from packtools.tooling.remote import (
    AgentAwareProcessRunner,
    RemoteCommandClient,
    SshRemoteCommandClient,
    build_remote_command,
)

__all__ = [
    "AgentAwareProcessRunner",
    "LocalProcessRunner",
    "ProcessRequest",
    "ProcessResult",
    "ProcessRunner",
    "RemoteCommandClient",
    "SshRemoteCommandClient",
    "build_remote_command",
    "minimal_env",
]
