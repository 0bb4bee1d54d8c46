"""Local and remote content manifests."""

from __future__ import annotations

import fnmatch
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from edge_provisioner.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from edge_provisioner.core.provider import ObjectStoreAPI, RemoteObject

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class LocalObject:
    """A file in the local asset tree.

    ``key`` is the object key in the store (``relative`` with the key prefix
    applied).
    """

    key: str
    relative: str
    path: Path
    fingerprint: str
    size: int


def normalize_prefix(prefix: str) -> str:
    """``"/site"`` and ``"site/"`` both become ``"site/"``; empty stays empty."""
    prefix = prefix.strip("/")
    return f"{prefix}/" if prefix else ""


def file_fingerprint(path: Path) -> str:
    """MD5 hex digest of the file content (the store's ETag for single-part uploads)."""
    digest = hashlib.md5(usedforsecurity=False)
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def is_excluded(relative: str, patterns: Iterable[str]) -> bool:
    name = relative.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(relative, p) or fnmatch.fnmatch(name, p) for p in patterns)


def build_local_manifest(
    root: Path,
    *,
    prefix: str = "",
    exclude: Iterable[str] = (),
) -> dict[str, LocalObject]:
    """Walk *root* and fingerprint every file not matched by *exclude*."""
    root = Path(root)
    if not root.is_dir():
        raise ConfigurationError(f"Content root is not a directory: {root}")

    prefix = normalize_prefix(prefix)
    patterns = list(exclude)
    manifest: dict[str, LocalObject] = {}
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        relative = path.relative_to(root).as_posix()
        if is_excluded(relative, patterns):
            logger.debug("Excluding %s", relative)
            continue
        key = prefix + relative
        manifest[key] = LocalObject(
            key=key,
            relative=relative,
            path=path,
            fingerprint=file_fingerprint(path),
            size=path.stat().st_size,
        )
    logger.debug("Local manifest: %d objects under %s", len(manifest), root)
    return manifest


def build_remote_manifest(
    provider: ObjectStoreAPI, store: str, *, prefix: str = ""
) -> dict[str, RemoteObject]:
    objects = provider.list_objects(store, normalize_prefix(prefix))
    manifest = {o.key: o for o in objects}
    logger.debug("Remote manifest: %d objects in %s", len(manifest), store)
    return manifest


def fingerprints(manifest: Mapping[str, LocalObject | RemoteObject]) -> dict[str, str]:
    return {key: obj.fingerprint for key, obj in manifest.items()}
