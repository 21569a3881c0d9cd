"""Locating and reading encrypted files under the storage directory."""

from pathlib import Path


def resolve_storage_path(storage_dir: str | Path, encrypted_path: str) -> Path:
    """Anchor a registry path inside ``storage_dir``.

    Registry rows store paths like ``storage/<file>.enc``; the leading
    ``storage/`` is dropped so it is not doubled.  Paths escaping the
    storage directory are rejected.
    """
    base = Path(storage_dir).resolve()
    relative = encrypted_path
    if relative.startswith("storage/"):
        relative = relative[len("storage/"):]
    candidate = (base / relative).resolve()
    if candidate != base and base not in candidate.parents:
        raise ValueError(f"Path escapes storage directory: {encrypted_path!r}")
    return candidate


def read_encrypted(storage_dir: str | Path, encrypted_path: str) -> bytes:
    path = resolve_storage_path(storage_dir, encrypted_path)
    if not path.is_file():
        raise FileNotFoundError(f"Document file not found: {encrypted_path}")
    return path.read_bytes()


def write_encrypted(storage_dir: str | Path, filename: str, data: bytes) -> str:
    """Write an encrypted blob and return the registry path for it."""
    base = Path(storage_dir)
    base.mkdir(parents=True, exist_ok=True)
    target = resolve_storage_path(base, filename)
    target.write_bytes(data)
    return f"storage/{filename}"
