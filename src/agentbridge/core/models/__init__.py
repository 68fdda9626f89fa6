"""Domain models for the bridge core.

Re-exports every public symbol so callers can write
``from agentbridge.core.models import ToolServerConfig``.
"""

from .context import *  # noqa: F401, F403
from .server import *  # noqa: F401, F403
from .state import *  # noqa: F401, F403
