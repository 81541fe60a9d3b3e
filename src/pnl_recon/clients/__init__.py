# Adapters for the storage collaborator
# Each adapter turns exported tables into the shapes the engine consumes

from .dashboard_client import DashboardDataLoader, LoadedData

__all__ = ["DashboardDataLoader", "LoadedData"]
