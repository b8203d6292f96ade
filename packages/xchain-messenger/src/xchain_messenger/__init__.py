"""
Cross-chain messenger package.

Message model, destination-side validation and execution, and the relayer
service that carries MessageSent events from source to destination chains.
"""

from .config import RelayerConfig
from .errors import MessengerError, classify_error
from .executor import MessageExecutor
from .models import CrossChainMessage, MessageSentEvent
from .relay_monitor import RelayMonitor
from .relayer import CrossChainRelayer
from .validator import MessageValidator

__all__ = [
    "CrossChainMessage",
    "CrossChainRelayer",
    "MessageExecutor",
    "MessageSentEvent",
    "MessageValidator",
    "MessengerError",
    "RelayMonitor",
    "RelayerConfig",
    "classify_error",
]
__version__ = "0.1.0"
