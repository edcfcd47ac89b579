# multiwall/controller.py

"""
Controller.

Operator console logic without a UI: holds the edit state for one
(instance, group), publishes rotation envelopes to the group's channel and
keeps concurrently open controllers converged through `controller-sync`.
"""

import re

from multiwall.bases.models import (
    ControllerState,
    EnvelopeType,
    LayoutMode,
    WallEnvelope,
)
from multiwall.clock import SystemClock, WallClock
from multiwall.config import WallLaunchConfig, get_config
from multiwall.constants import WALL_RELAY_EVENT
from multiwall.db import JsonFileStore, StorageError
from multiwall.logger import get_logger
from multiwall.routing import configured_channel
from multiwall.sync.reconciler import ControllerReconciler
from multiwall.sync.sequencer import SequenceClock, new_session_id
from multiwall.transport.base import TransportError, WallTransport

log = get_logger(__name__)

DEFAULT_CARD_PRODUCTS = [
    f'<figure class="product-card">\n'
    f'  <img src="/products/{slug}.webp" alt="{name}" />\n'
    f"  <figcaption><h2>{name}</h2><p>{blurb}</p></figcaption>\n"
    f"</figure>"
    for slug, name, blurb in (
        ("classic", "Classic", "The house original."),
        ("harbour", "Harbour", "Inspired by the seaside."),
        ("detective", "Detective", "For connoisseurs of good taste."),
        ("market", "Market", "The best deal in town."),
        ("seasonal", "Seasonal", "A surprising mix of seasonal toppings."),
        ("popular", "Popular", "Our customers' favourite."),
    )
]

DEFAULT_IMAGE_PRODUCTS = [
    f'<img class="slide-asset" src="/products/{slug}.webp" alt="{name}" />'
    for slug, name in (
        ("classic", "Classic"),
        ("harbour", "Harbour"),
        ("detective", "Detective"),
        ("market", "Market"),
        ("seasonal", "Seasonal"),
        ("popular", "Popular"),
    )
]

_BLOCK_SPLIT = re.compile(r"\n\s*\n")
_BARE_IMG = re.compile(r"^<img\s", re.IGNORECASE)
_IMG_TAG = re.compile(r"<img[^>]*>", re.IGNORECASE)


def default_products(layout: LayoutMode) -> list[str]:
    source = DEFAULT_IMAGE_PRODUCTS if layout is LayoutMode.IMAGE else DEFAULT_CARD_PRODUCTS
    return list(source)


def read_products(text: str, layout: LayoutMode = LayoutMode.CARD) -> list[str]:
    """
    Split the operator's product text into content items.

    Several blank-line separated blocks are one item each; a single block is
    split into its non-empty lines; empty text yields the layout's defaults.
    """
    normalized = (text or "").replace("\r\n", "\n")
    blocks = [b.strip() for b in _BLOCK_SPLIT.split(normalized) if b.strip()]
    if len(blocks) > 1:
        return blocks
    lines = [line.strip() for line in normalized.split("\n") if line.strip()]
    if lines:
        return lines
    return default_products(layout)


def extract_images(products: list[str]) -> list[str]:
    """Reduce each item to its first <img> tag, for the image layout."""
    result = []
    for product in products:
        if _BARE_IMG.match(product.strip()):
            result.append(product)
            continue
        match = _IMG_TAG.search(product)
        result.append(match.group(0) if match else product)
    return result


class WallController:
    def __init__(
        self,
        instance_id: str,
        group_id: str,
        transport: WallTransport,
        *,
        store: JsonFileStore | None = None,
        clock: WallClock | None = None,
        settings: WallLaunchConfig | None = None,
        session_id: str | None = None,
    ) -> None:
        self.settings = settings or get_config()
        self.instance_id = instance_id
        self.group_id = group_id
        self.transport = transport
        self.store = store
        self.clock = clock or SystemClock()

        self.session_id = session_id or new_session_id()
        self.sequence_clock = SequenceClock(self.clock.now)
        self.channel = configured_channel(instance_id, group_id, self.settings.transport)
        self.reconciler = ControllerReconciler(self.session_id, self.apply_sync)

        self.state = ControllerState(
            interval_seconds=self.settings.timer.default_interval_ms // 1000
        )
        self.start_index = 0
        self.start_time: float | None = None
        self.status = "Waiting for start"

    # --- Derived values ---

    @property
    def interval_ms(self) -> int:
        seconds = self.state.interval_seconds
        if seconds and seconds > 0:
            return seconds * 1000
        return self.settings.timer.default_interval_ms

    def products(self) -> list[str]:
        return read_products(self.state.products, self.state.layout_mode)

    def compose(self, envelope_type: EnvelopeType) -> WallEnvelope:
        """Build the next envelope from the current edit state."""
        products = self.products()
        if (
            self.state.layout_mode is LayoutMode.IMAGE
            and envelope_type is not EnvelopeType.CONTROLLER_SYNC
        ):
            products = extract_images(products)

        sequence = self.sequence_clock.next_sequence()
        self.reconciler.note_local(sequence)

        with_epoch = envelope_type in (
            EnvelopeType.INIT,
            EnvelopeType.TICK,
            EnvelopeType.CONFIG_UPDATE,
        )
        return WallEnvelope(
            type=envelope_type,
            ts=self.clock.now(),
            session_id=self.session_id,
            sequence=sequence,
            start_index=self.start_index,
            interval_ms=self.interval_ms,
            products=products,
            layout_mode=self.state.layout_mode,
            group_id=self.group_id,
            instance_id=self.instance_id,
            production_mode=self.state.production_mode,
            start_time=self.start_time if with_epoch else None,
        )

    # --- Operations ---

    async def start(self) -> bool:
        """Start a fresh rotation: index 0, new shared epoch."""
        self.start_index = 0
        self.start_time = self.clock.now()
        self.state.is_running = True
        ok = await self._publish(self.compose(EnvelopeType.INIT))
        await self._save()
        if ok:
            self.status = "Rotating (screens run autonomously)"
        return ok

    async def stop(self) -> bool:
        self.state.is_running = False
        ok = await self._publish(self.compose(EnvelopeType.STOP))
        self.start_time = None
        await self._save()
        if ok:
            self.status = "Stopped"
        return ok

    async def reset(self) -> bool:
        """Restart the rotation from index 0 with a new epoch."""
        self.start_index = 0
        self.start_time = self.clock.now()
        ok = await self._publish(self.compose(EnvelopeType.INIT))
        if ok:
            self.status = "Index reset"
        return ok

    async def tick(self) -> bool:
        """Nudge screens to re-derive their index now."""
        return await self._publish(self.compose(EnvelopeType.TICK))

    async def update(
        self,
        *,
        interval_seconds: int | None = None,
        products: str | None = None,
        layout_mode: LayoutMode | str | None = None,
        production_mode: bool | None = None,
    ) -> bool:
        """
        Apply operator edits, persist them and tell peers and screens.

        Screens get a `config-update` against the running epoch; a layout
        switch restarts the rotation from index 0 with an `init` instead.
        """
        layout_changed = False
        if interval_seconds is not None:
            self.state.interval_seconds = interval_seconds
        if products is not None:
            self.state.products = products
        if layout_mode is not None:
            layout_mode = LayoutMode(layout_mode)
            layout_changed = layout_mode is not self.state.layout_mode
            self.state.layout_mode = layout_mode
            if layout_changed and not self.state.products.strip():
                self.state.products = "\n\n".join(default_products(layout_mode))
        if production_mode is not None:
            self.state.production_mode = production_mode

        await self._save()
        ok = await self._publish(self.compose(EnvelopeType.CONTROLLER_SYNC))
        if not self.state.is_running:
            return ok

        if layout_changed or self.start_time is None:
            self.start_index = 0
            self.start_time = self.clock.now()
            return await self._publish(self.compose(EnvelopeType.INIT)) and ok
        return await self._publish(self.compose(EnvelopeType.CONFIG_UPDATE)) and ok

    async def load(self) -> bool:
        """Restore persisted edit state. Returns False when there is none."""
        if self.store is None:
            return False
        try:
            saved = await self.store.get_state(self.instance_id, self.group_id)
        except StorageError as e:
            log.error(f"Failed to load state for {self.instance_id}/{self.group_id}: {e}")
            return False
        if saved is None:
            if not self.state.products.strip():
                self.state.products = "\n\n".join(default_products(self.state.layout_mode))
            return False
        self.state = saved
        self.status = (
            "Rotating (screens run autonomously)" if saved.is_running else "Waiting for start"
        )
        log.info(f"Restored controller state for {self.instance_id}/{self.group_id}")
        return True

    async def attach(self) -> bool:
        """Start listening for peer controllers on the group channel."""
        return await self.reconciler.attach(self.transport, self.channel)

    async def close(self) -> None:
        await self.reconciler.close()

    def apply_sync(self, envelope: WallEnvelope) -> None:
        """Merge a peer's edit state without republishing it."""
        if envelope.interval_ms:
            self.state.interval_seconds = max(1, envelope.interval_ms // 1000)
        if envelope.products:
            self.state.products = "\n\n".join(envelope.products)
        self.state.layout_mode = envelope.layout_mode
        self.state.production_mode = envelope.production_mode

    # --- Helpers ---

    async def _publish(self, envelope: WallEnvelope) -> bool:
        try:
            await self.transport.publish(self.channel, WALL_RELAY_EVENT, envelope)
        except TransportError as e:
            log.error(f"Failed to publish {envelope.type.value}: {e}")
            self.status = f"Publish failed: {e}"
            return False
        log.debug(f"Published {envelope.type.value} seq {envelope.sequence} on {self.channel}")
        return True

    async def _save(self) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_state(self.instance_id, self.group_id, self.state)
        except StorageError as e:
            log.error(f"Failed to save state for {self.instance_id}/{self.group_id}: {e}")
