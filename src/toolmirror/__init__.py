"""toolmirror - mirror board-support toolchains into a self-hosted registry."""

__version__ = "0.1.0"
