from crud_engine.state.store import CRUDState, CRUDStore, ModalType, PaginationState, ViewMode

__all__ = ["CRUDState", "CRUDStore", "ModalType", "PaginationState", "ViewMode"]
