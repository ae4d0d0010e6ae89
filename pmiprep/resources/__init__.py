from pmiprep.resources.catalog import ResourceCatalog

__all__ = ["ResourceCatalog"]
