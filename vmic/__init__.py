"""vmic — single-shot, severity-ranked Linux host diagnostic report."""

__version__ = "0.3.0"
