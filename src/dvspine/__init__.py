"""
dvspine - schema reconciliation and adaptive writes for metadata-driven stores.

::

    dvspine.core        errors, logging, settings, single-flight cache
    dvspine.execution   bounded fan-out and deadlines
    dvspine.store       client, catalog, ensure, resolvers, adaptive writer
    dvspine.cli         typer CLI (``dvspine provision``, ``dvspine seed``, ...)
"""

__version__ = "0.1.0"
