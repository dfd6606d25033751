"""
Ingest plugin: the sink every monitor pipeline ends with.
"""

from .sinks import ArticleSink

__all__ = ["ArticleSink"]
