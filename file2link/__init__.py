"""file2link: chat-driven file links, gated by a hot-reloadable permissions file."""

__version__ = "0.3.0"
