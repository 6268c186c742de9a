from bilde.services.ingest_service import ImageVersion, IngestResult, IngestService
from bilde.services.query_service import ImageMetadata, QueryService
from bilde.services.variant_service import VariantResult, VariantService

__all__ = [
    "ImageMetadata",
    "ImageVersion",
    "IngestResult",
    "IngestService",
    "QueryService",
    "VariantResult",
    "VariantService",
]
