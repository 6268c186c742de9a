from bilde.db.models.image import ImageRecord

__all__ = ["ImageRecord"]
