from .repository import RoomRepository, normalize_code

__all__ = ['RoomRepository', 'normalize_code']
