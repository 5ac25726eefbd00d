from qoverlay.state.store import JsonSideStateStore, MemorySideStateStore, SideStateStore

__all__ = ["JsonSideStateStore", "MemorySideStateStore", "SideStateStore"]
