from __future__ import annotations

import hashlib
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from arwah.config import settings

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _safe_filename(name: str) -> str:
    # Collapse anything that is not a plain word character into dashes.
    slug = re.sub(r"[^\w-]+", "-", name.strip(), flags=re.ASCII)
    return slug.strip("-_")


def download_filename(caption: str | None) -> str:
    slug = _safe_filename(caption or "")
    return f"{settings.download_prefix}-{slug or 'card'}.png"


@dataclass(frozen=True)
class StoredOutput:
    output_id: str
    kind: str  # preview|final
    png: bytes
    sha256: str
    created_at: str

    @property
    def size(self) -> int:
        return len(self.png)


class OutputStore:
    """
    In-memory holder for rendered cards. Each output lives until it is released;
    callers release an output as soon as a newer one replaces it.
    """

    def __init__(self) -> None:
        self._outputs: dict[str, StoredOutput] = {}

    def put(self, kind: str, png: bytes) -> StoredOutput:
        out = StoredOutput(
            output_id=uuid.uuid4().hex[:12],
            kind=kind,
            png=png,
            sha256=_sha256_bytes(png),
            created_at=_now_iso(),
        )
        self._outputs[out.output_id] = out
        logger.debug("stored %s output %s (%d bytes)", kind, out.output_id, out.size)
        return out

    def get(self, output_id: str) -> StoredOutput:
        return self._outputs[output_id]

    def release(self, output_id: str | None) -> None:
        if output_id is None:
            return
        if self._outputs.pop(output_id, None) is not None:
            logger.debug("released output %s", output_id)

    def release_all(self) -> None:
        self._outputs.clear()

    def __contains__(self, output_id: object) -> bool:
        return output_id in self._outputs

    def __len__(self) -> int:
        return len(self._outputs)
