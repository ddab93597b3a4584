"""Diagram rasterisation."""

from .mermaid import MermaidRenderer, RenderError, RenderOutcome, render_diagrams

__all__ = ["MermaidRenderer", "RenderError", "RenderOutcome", "render_diagrams"]
