"""
Convocate - Model Components
Ollama runtime interface and the core data records.
"""

from .runtime import OllamaRuntime, ModelError, ModelTimeoutError, ModelQuotaError
from .message import Message
from .profile import StyleProfile

__all__ = [
    "OllamaRuntime",
    "ModelError",
    "ModelTimeoutError",
    "ModelQuotaError",
    "Message",
    "StyleProfile",
]
