from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from functools import partial
from typing import Callable

from PIL import Image

from arwah.assembly.render import CompositionParameters, decode_photo, load_template, render_card_png
from arwah.errors import EncodeError
from arwah.preview import PreviewDriver
from arwah.storage import OutputStore, StoredOutput, download_filename

logger = logging.getLogger(__name__)


class CardSession:
    """
    The one owner of mutable state for a card being made: the uploaded photo,
    the current parameters, the live preview and the finalized card.

    Renders always see a snapshot of (photo, template, parameters), so the
    compositor itself stays stateless.
    """

    def __init__(
        self,
        template_loader: Callable[[], Image.Image] = load_template,
        store: OutputStore | None = None,
        preview_delay: float | None = None,
    ) -> None:
        self._template_loader = template_loader
        self.store = store or OutputStore()
        self.driver = PreviewDriver(self._accept_preview, delay=preview_delay)
        self.photo: Image.Image | None = None
        self.photo_name = ""
        self.params = CompositionParameters()
        self.preview: StoredOutput | None = None
        self.final: StoredOutput | None = None
        self.is_processing = False
        # Bumped whenever the photo is replaced or cleared, so late final renders can tell.
        self._epoch = 0

    @property
    def has_photo(self) -> bool:
        return self.photo is not None

    def load_photo(self, data: bytes, filename: str = "") -> None:
        """
        Decode and adopt a new photo. A DecodeError propagates and leaves the
        session exactly as it was.
        """
        self._adopt(self._prepare(data), filename)

    async def open_photo(self, data: bytes, filename: str = "") -> None:
        """Same as load_photo, with the decode done in a worker thread."""
        photo = await asyncio.to_thread(self._prepare, data)
        self._adopt(photo, filename)

    def update(
        self,
        circle_size: float | None = None,
        feather: float | None = None,
        caption: str | None = None,
    ) -> int:
        changes: dict[str, object] = {}
        if circle_size is not None:
            changes["circle_size"] = circle_size
        if feather is not None:
            changes["feather"] = feather
        if caption is not None:
            changes["caption"] = caption
        self.params = replace(self.params, **changes)
        return self._schedule_preview()

    async def finalize(self) -> StoredOutput | None:
        """
        Render the card once with the current parameters and keep it until reset.
        Returns None when encoding produced no output or the photo went away
        while rendering.
        """
        if self.photo is None:
            raise RuntimeError("no photo loaded")
        if self.is_processing:
            raise RuntimeError("a render is already in progress")

        self.is_processing = True
        self.driver.cancel()
        epoch = self._epoch
        try:
            job = self._job()
            try:
                png: bytes | None = await asyncio.to_thread(job)
            except EncodeError as exc:
                logger.warning("final render produced no output: %s", exc)
                png = None

            # The photo was replaced or the session reset while rendering.
            if epoch != self._epoch:
                logger.debug("discarding final render for a photo no longer loaded")
                return None
            if png is None:
                self._set_final(None)
                return None
            self._set_final(self.store.put("final", png))
            logger.info("finalized card %s", self.final.output_id)
            return self.final
        finally:
            self.is_processing = False

    def reset(self) -> None:
        self._epoch += 1
        self.driver.cancel()
        self._set_preview(None)
        self._set_final(None)
        self.store.release_all()
        self.photo = None
        self.photo_name = ""
        self.params = CompositionParameters()
        logger.info("session reset")

    def download_filename(self) -> str:
        return download_filename(self.params.caption)

    def _prepare(self, data: bytes) -> Image.Image:
        photo = decode_photo(data)
        # Fail on a missing template before anything is replaced.
        self._template_loader()
        return photo

    def _adopt(self, photo: Image.Image, filename: str) -> None:
        self._epoch += 1
        self.photo = photo
        self.photo_name = filename
        self._set_final(None)
        logger.info("loaded photo %r (%sx%s)", filename, photo.width, photo.height)
        self._schedule_preview()

    def _job(self) -> Callable[[], bytes]:
        return partial(render_card_png, self.photo, self._template_loader(), self.params)

    def _schedule_preview(self) -> int:
        if self.photo is None:
            return self.driver.generation
        return self.driver.schedule(self._job())

    def _accept_preview(self, png: bytes | None) -> None:
        self._set_preview(self.store.put("preview", png) if png else None)

    def _set_preview(self, out: StoredOutput | None) -> None:
        if self.preview is not None:
            self.store.release(self.preview.output_id)
        self.preview = out

    def _set_final(self, out: StoredOutput | None) -> None:
        if self.final is not None:
            self.store.release(self.final.output_id)
        self.final = out
