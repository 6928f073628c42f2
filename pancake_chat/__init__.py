"""Client-side core of a small chat system: wire protocol, server connection,
local storage, conversation timelines, voice calls and unread badges."""

__version__ = "0.1.0"
__all__ = ["__version__"]