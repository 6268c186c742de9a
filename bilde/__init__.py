"""Image storage with deterministic, cached variants."""

from bilde.context import Imaging, ImagingContext, create_imaging
from bilde.naming import Naming

__all__ = ["Imaging", "ImagingContext", "Naming", "create_imaging"]
