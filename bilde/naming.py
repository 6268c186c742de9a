"""Storage key naming conventions.

Every stored blob is named ``{identifier}_{variant}.{extension}``. The
identifier never contains ``_`` and the variant never contains ``.``, so a
bare key can be split back into its owning asset and its extension without a
lookup.
"""

from __future__ import annotations

import re

from bilde.errors import MalformedKeyError

FILE_NAME_FORMAT = "{identifier}_{variant}.{extension}"
VARIANT_FORMAT = "{format}_{quality}_{width}x{height}"
PATH_FORMAT = "{namespace}/{key}"

ORIGINAL = "original"
DEFAULT_EXTENSION = "jpeg"

# Extensions end up in storage keys and object paths
EXTENSION_PATTERN = re.compile(r"[a-z0-9]+")


class Naming:
    """Pure functions mapping variant parameters to and from storage keys."""

    def __init__(self, default_extension: str = DEFAULT_EXTENSION) -> None:
        self.default_extension = default_extension.lower()

    def variant_key(self, format: str, quality: int, width: int, height: int) -> str:
        """Name a derived variant.

        The ``x`` between width and height keeps every derived key distinct
        from :data:`ORIGINAL`.
        """
        return VARIANT_FORMAT.format(
            format=format, quality=quality, width=width, height=height
        ).lower()

    def storage_key(self, identifier: str, variant: str, extension: str) -> str:
        return FILE_NAME_FORMAT.format(
            identifier=identifier, variant=variant, extension=extension
        ).lower()

    def original_key(self, identifier: str, extension: str) -> str:
        return self.storage_key(identifier, ORIGINAL, extension)

    def partial_key(self, identifier: str) -> str:
        """Return a key template with only the identifier bound.

        Fill it with ``template.format(variant=..., extension=...)``.
        """
        return f"{identifier.lower()}_{{variant}}.{{extension}}"

    def identifier_from_key(self, key: str) -> str:
        """Recover the asset identifier from a storage key."""
        index = key.find("_")
        if index == -1:
            raise MalformedKeyError(key)
        if index == 0:
            raise MalformedKeyError(key, "empty identifier")
        return key[:index]

    def extension_from_key(self, key: str) -> str:
        """Return the extension of *key*, or the default when it has none."""
        index = key.rfind(".")
        if index == -1 or index == len(key) - 1:
            return self.default_extension
        return key[index + 1:].lower()

    def is_valid_extension(self, extension: str) -> bool:
        return EXTENSION_PATTERN.fullmatch(extension) is not None

    def relative_path(self, namespace: str, key: str) -> str:
        return PATH_FORMAT.format(namespace=namespace, key=key).lower()
