"""ContentGate: iterative quality gate for generated marketing articles."""

__version__ = "0.1.0"
