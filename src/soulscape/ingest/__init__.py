"""Transaction history ingestion."""

from soulscape.ingest.explorer import ExplorerClient, ExplorerError

__all__ = ["ExplorerClient", "ExplorerError"]
