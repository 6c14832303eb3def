"""Login via Open Console for Python web applications."""

from __future__ import annotations

__version__ = "0.10"
