"""pillarflow: workflow engine for eight-stage brand strategies."""

__version__ = "0.1.0"
