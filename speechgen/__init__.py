"""speechgen package.

Turns scanned product pages into TTS-ready explanation scripts through a
vision language model, one page at a time, with retry, pacing and
cancellation handled by :class:`BatchOrchestrator`.
"""

from .orchestrator import BatchOrchestrator  # noqa: F401
from .pipeline import SpeechScriptGenerator  # noqa: F401

__all__ = ["BatchOrchestrator", "SpeechScriptGenerator"]
