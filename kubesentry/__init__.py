"""kubesentry: turns Kubernetes events and container crashes into grouped Sentry reports."""

__version__ = "0.1.0"
