"""savemychat: server-side store for captured AI-chat conversations."""

__version__ = "0.4.0"
