"""SmartOps automation orchestration engine."""

__version__ = "0.3.0"
