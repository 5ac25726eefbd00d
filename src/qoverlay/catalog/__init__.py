from qoverlay.catalog.base import AssetCatalog, CatalogQuery
from qoverlay.catalog.sqlite import SqliteCatalog

__all__ = ["AssetCatalog", "CatalogQuery", "SqliteCatalog"]
