"""service-webman: webhook ingress and HTTP POST dispatch for a task runtime."""

__version__ = "0.1.0"
