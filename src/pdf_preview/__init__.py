"""
PDF Preview Service package.

Renders the first page of an uploaded PDF into a preview image, falling back
to a synthesized placeholder when the rendering engine is unavailable. The
HTTP API lives in `pdf_preview.webapi`, the core pipeline in
`pdf_preview.conversion`.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
