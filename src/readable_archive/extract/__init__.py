"""Content extraction pipeline."""

from readable_archive.extract.drop import Drop, DropMeta, URLList
from readable_archive.extract.extractor import (
    STOP,
    ExtractResult,
    Extractor,
    ProcessMessage,
    Processor,
    ProcessStep,
)
from readable_archive.extract.http import new_client
from readable_archive.extract.picture import Picture

__all__ = [
    "STOP",
    "Drop",
    "DropMeta",
    "ExtractResult",
    "Extractor",
    "Picture",
    "ProcessMessage",
    "ProcessStep",
    "Processor",
    "URLList",
    "new_client",
]
