"""Provider aggregation API client."""

from .http_catalog import HttpCatalogClient, parse_source_result

__all__ = ["HttpCatalogClient", "parse_source_result"]
