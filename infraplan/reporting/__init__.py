"""Human-readable renderings of provisioning plans."""

from .markdown import render_markdown

__all__ = ["render_markdown"]
