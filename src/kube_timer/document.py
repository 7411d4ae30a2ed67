"""Resource document loading and name materialization."""

from __future__ import annotations

import copy
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

# Same alphabet the API server uses for generateName suffixes.
_NAME_SUFFIX_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
_NAME_SUFFIX_LENGTH = 5


class DocumentDecodeError(RuntimeError):
    """Raised when a resource document cannot be read or parsed."""


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """Group/version/resource coordinates for a dynamically typed document."""

    group: str
    version: str
    kind: str
    resource: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "ResourceDescriptor":
        api_version = str(document["apiVersion"])
        kind = str(document["kind"])
        group, _, version = api_version.rpartition("/")
        lowered = kind.lower()
        plural = lowered + ("es" if lowered.endswith("s") else "s")
        return cls(group=group, version=version, kind=kind, resource=plural)


class ResourceDocument:
    """A templated resource definition reused for every create call of a batch."""

    def __init__(self, content: dict[str, Any], *, source: Path | None = None) -> None:
        if not isinstance(content, dict):
            raise DocumentDecodeError(
                f"resource document {source or '<inline>'} must be a mapping, got {type(content).__name__}"
            )
        missing = [key for key in ("apiVersion", "kind") if not content.get(key)]
        if missing:
            raise DocumentDecodeError(
                f"resource document {source or '<inline>'} is missing {', '.join(missing)}"
            )
        self._content = content
        self._descriptor = ResourceDescriptor.from_document(content)

    @classmethod
    def load(cls, path: Path | str) -> "ResourceDocument":
        """Read a YAML or JSON document from disk; only the first document is used."""

        source = Path(path)
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise DocumentDecodeError(f"error reading resource definition file: {exc}") from exc

        try:
            documents = [doc for doc in yaml.safe_load_all(text) if doc is not None]
        except yaml.YAMLError as exc:
            raise DocumentDecodeError(f"error decoding resource definition {source}: {exc}") from exc

        if not documents:
            raise DocumentDecodeError(f"resource definition {source} is empty")
        return cls(documents[0], source=source)

    @property
    def descriptor(self) -> ResourceDescriptor:
        return self._descriptor

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self._content.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @property
    def namespace(self) -> str | None:
        return self.metadata.get("namespace") or None

    @property
    def generate_name(self) -> str | None:
        return self.metadata.get("generateName") or None

    @property
    def name(self) -> str | None:
        return self.metadata.get("name") or None

    def materialize(self, *, rng: random.Random | None = None) -> dict[str, Any]:
        """Return a copy of the document with a concrete ``metadata.name``.

        A ``generateName`` prefix gets a random suffix so the name is known before
        the create call is issued.
        """

        body = copy.deepcopy(self._content)
        metadata = body.setdefault("metadata", {})
        prefix = self.generate_name
        if prefix:
            chooser = rng or random
            suffix = "".join(chooser.choice(_NAME_SUFFIX_ALPHABET) for _ in range(_NAME_SUFFIX_LENGTH))
            metadata.pop("generateName", None)
            metadata["name"] = f"{prefix}{suffix}"
        elif not self.name:
            raise DocumentDecodeError(
                "resource definition requires metadata.name or metadata.generateName"
            )
        return body


__all__ = ["DocumentDecodeError", "ResourceDescriptor", "ResourceDocument"]
