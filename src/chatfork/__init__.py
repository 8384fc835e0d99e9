"""chatfork - branching conversation engine for AI chat clients."""

__version__ = "0.1.0"
