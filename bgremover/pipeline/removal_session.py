# pipeline/removal_session.py
"""
Per-user orchestration of the background-removal pipeline.

• Holds the immutable original, its palette, the current selection/tolerance
  and the latest result.
• Every selection or tolerance change triggers a masking pass computed from
  the original; a newer trigger supersedes (cancels) an older one.
"""
from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Optional, Tuple
import logging
import threading
import uuid

from ..models.errors import DecodeFailure, MaskingCancelled, SessionStateError
from ..models.image import Image
from ..models.mask_settings import MaskSettings
from ..models.palette import PaletteEntry
from ..models.session_state import SessionState
from ..services.image_service import ImageService
from ..services.masking_service import MaskingService
from ..services.palette_service import PaletteService

logger = logging.getLogger(__name__)


class RemovalSession:
    """Manages state for a single user's background-removal session."""

    def __init__(
            self,
            session_id: str | None = None,
            *,
            image_service: ImageService | None = None,
            palette_service: PaletteService | None = None,
            masking_service: MaskingService | None = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.image_service = image_service or ImageService()
        self.palette_service = palette_service or PaletteService()
        self.masking_service = masking_service or MaskingService()

        self._cond = threading.Condition()
        self._executor = ThreadPoolExecutor(max_workers=1,
                                            thread_name_prefix=f"mask-{self.session_id[:8]}")
        self._pending: Optional[Future] = None
        self._generation = 0   # bumped on every trigger
        self._committed = 0    # generation of the result currently held
        self._error: Optional[BaseException] = None

        self.state = SessionState.IDLE
        self.original: Optional[Image] = None
        self.palette: Tuple[PaletteEntry, ...] = ()
        self.settings = MaskSettings()
        self.result: Optional[Image] = None

    # ──────────────────────────────────────────────────────────────────
    # Loading / reset
    # ──────────────────────────────────────────────────────────────────
    def load(self, data: bytes) -> Tuple[PaletteEntry, ...]:
        """
        Decode *data*, extract its palette and make the unmasked copy the result.

        Raises:
            DecodeFailure: the bytes are not a readable image; the session is
                left IDLE with nothing retained.
        """
        self.reset()
        try:
            image = self.image_service.decode(data)
        except DecodeFailure as err:
            logger.error(f"Session {self.session_id}: {err}")
            raise
        return self.load_image(image)

    def load_image(self, image: Image) -> Tuple[PaletteEntry, ...]:
        """Same as ``load`` for an already decoded RGBA Image."""
        self.reset()
        original = self.image_service.freeze(self.image_service.copy(image))

        with self._cond:
            self.state = SessionState.EXTRACTING
            generation = self._generation
        palette = self.palette_service.extract_from_original(original)

        with self._cond:
            if self._is_stale(generation):
                # reset or another load while extracting; that one wins
                logger.info(f"Session {self.session_id}: load superseded during extraction")
                return palette
            self.original = original
            self.palette = palette
            self.settings = MaskSettings()
            self.result = self.image_service.copy(original)
            self._committed = self._generation
            self._error = None
            self.state = SessionState.READY
            self._cond.notify_all()

        logger.info(
            f"Session {self.session_id}: loaded {original.width}x{original.height}, "
            f"{len(palette)} palette colors"
        )
        return palette

    def reset(self) -> None:
        """Back to IDLE: drop original, palette, selection and result."""
        with self._cond:
            self._generation += 1   # any pass still running becomes stale
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            self.original = None
            self.palette = ()
            self.settings = MaskSettings()
            self.result = None
            self._error = None
            self.state = SessionState.IDLE
            self._cond.notify_all()

    def close(self) -> None:
        self.reset()
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ──────────────────────────────────────────────────────────────────
    # Triggers
    # ──────────────────────────────────────────────────────────────────
    def toggle_color(self, color) -> MaskSettings:
        return self._update(lambda settings: settings.toggled(color))

    def select_colors(self, colors: Iterable) -> MaskSettings:
        return self._update(lambda settings: settings.with_targets(colors))

    def set_tolerance(self, tolerance) -> MaskSettings:
        return self._update(lambda settings: settings.with_tolerance(tolerance))

    def _update(self, change: Callable[[MaskSettings], MaskSettings]) -> MaskSettings:
        """
        Apply *change* to the current settings and schedule a masking pass.
        Runs entirely under the session lock.

        Raises:
            SessionStateError: no image is loaded.
        """
        with self._cond:
            if self.original is None or self.state in (SessionState.IDLE, SessionState.EXTRACTING):
                raise SessionStateError(f"No image loaded (state={self.state.value})")
            settings = change(self.settings)   # validation errors leave state untouched
            self.settings = settings
            self._generation += 1
            generation = self._generation
            if self._pending is not None:
                self._pending.cancel()   # no-op once the pass has started
            self.state = SessionState.MASKING
            self._pending = self._executor.submit(self._run_pass, generation,
                                                  self.original, settings)
        logger.debug(f"Session {self.session_id}: scheduled pass #{generation}")
        return settings

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def _run_pass(self, generation: int, original: Image, settings: MaskSettings) -> None:
        try:
            result = self.masking_service.apply(
                original, settings, cancelled=lambda: self._is_stale(generation)
            )
        except MaskingCancelled:
            logger.debug(f"Session {self.session_id}: pass #{generation} superseded")
            return
        except Exception as err:
            logger.error(f"Session {self.session_id}: pass #{generation} failed: {err}")
            with self._cond:
                if not self._is_stale(generation):
                    self._error = err
                    self._committed = generation
                    self.state = SessionState.READY
                    self._cond.notify_all()
            return

        with self._cond:
            if self._is_stale(generation):
                return
            self.result = result
            self._error = None
            self._committed = generation
            self.state = SessionState.READY
            self._cond.notify_all()

    # ──────────────────────────────────────────────────────────────────
    # Results
    # ──────────────────────────────────────────────────────────────────
    @property
    def is_processing(self) -> bool:
        with self._cond:
            return self.state in (SessionState.EXTRACTING, SessionState.MASKING)

    def wait(self, timeout: float | None = None) -> Optional[Image]:
        """
        Block until the result for the latest inputs is available.

        Returns:
            Image | None: the result, or None when the session is IDLE.
        Raises:
            TimeoutError: the latest pass did not finish in time.
        """
        with self._cond:
            done = self._cond.wait_for(
                lambda: self.state == SessionState.IDLE or self._committed == self._generation,
                timeout=timeout,
            )
            if not done:
                raise TimeoutError(f"Masking pass did not finish within {timeout}s")
            if self._error is not None:
                raise self._error
            return self.result

    def encode_result(self, timeout: float | None = None) -> bytes:
        """PNG bytes of the latest result (terminal, not cancelable)."""
        result = self.wait(timeout)
        if result is None:
            raise SessionStateError("No image loaded")
        return self.image_service.encode_png(result)

    def palette_hex(self) -> list[str]:
        return [c.to_hex() for c in self.palette]

    def status(self) -> Dict[str, Any]:
        with self._cond:
            return {
                'session_id': self.session_id,
                'state': self.state.value,
                'processing': self.state in (SessionState.EXTRACTING, SessionState.MASKING),
                'palette': self.palette_hex(),
                'selected_colors': self.settings.hex_targets(),
                'tolerance': self.settings.tolerance,
                'width': self.original.width if self.original is not None else None,
                'height': self.original.height if self.original is not None else None,
            }
