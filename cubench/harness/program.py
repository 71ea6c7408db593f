"""Program image loading.

The image is the one thing a measurement cannot be made without. A missing
directory, a missing file or an empty file all fail with FixtureError before
any runtime is created: an SVM without the program would happily report a
handful of CU for an instruction it never executed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from cubench.benchmark.defaults import PROGRAM_DIR_ENV
from cubench.benchmark.exceptions import FixtureError
from cubench.utils.logger import get_logger

logger = get_logger(__name__)

ELF_MAGIC = b"\x7fELF"

# Read-only images shared by every fixture in this process.
_IMAGE_CACHE: Dict[Tuple[Path, str], "ProgramImage"] = {}


@dataclass(frozen=True)
class ProgramImage:
    """A compiled program and the address it is deployed at."""

    name: str
    program_id: str
    path: Path
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.data).hexdigest()


def image_path(program_dir: Path, name: str) -> Path:
    return Path(program_dir) / f"{name}.so"


def load_program_image(
    program_dir: Optional[Path],
    name: str,
    program_id: str,
    label: str = "",
) -> ProgramImage:
    """Load ``<program_dir>/<name>.so`` once per process.

    Raises:
        FixtureError: if no directory is configured or the image is absent,
            empty, or not an ELF file.
    """
    if program_dir is None:
        raise FixtureError(
            f"No program image directory configured for {name}; "
            f"set {PROGRAM_DIR_ENV} or pass --program-dir",
            label=label,
            reason="program directory not configured",
        )

    path = image_path(program_dir, name)
    key = (path.resolve(), program_id)
    cached = _IMAGE_CACHE.get(key)
    if cached is not None:
        return cached

    if not path.is_file():
        raise FixtureError(
            f"Program image not found: {path}",
            label=label,
            reason="missing image",
        )
    data = path.read_bytes()
    if not data:
        raise FixtureError(
            f"Program image is empty: {path}",
            label=label,
            reason="empty image",
        )
    if not data.startswith(ELF_MAGIC):
        raise FixtureError(
            f"Program image is not an ELF file: {path}",
            label=label,
            reason="not an ELF image",
        )

    image = ProgramImage(name=name, program_id=program_id, path=path, data=data)
    _IMAGE_CACHE[key] = image
    logger.debug(f"Loaded {name} image ({image.size} bytes, sha256 {image.digest[:12]}) from {path}")
    return image


def clear_image_cache() -> None:
    """Forget cached images (tests that rewrite an image in place)."""
    _IMAGE_CACHE.clear()
