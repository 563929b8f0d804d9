import logging
from collections.abc import Callable

from .journey_model import Journey, Node
from .scene import NodeDetails, Scene, build_scene, node_details
from .store import JourneyStore
from .viewport import (
    BUTTON_ZOOM_STEP,
    PanGesture,
    ViewportTransform,
    wheel_zoom_factor,
)

logger = logging.getLogger(__name__)

SelectionSink = Callable[[Node | None], None]


class GraphCanvas:
    """
    View state for one journey canvas: the viewport transform, an in-progress
    pan and the selected node.

    The canvas reads snapshots and never writes to the store. Selection changes
    are pushed to the registered selection sinks.
    """

    def __init__(
        self,
        journey: Journey | None = None,
        transform: ViewportTransform | None = None,
    ) -> None:
        self._journey = journey if journey is not None else Journey()
        self.transform = transform or ViewportTransform()
        self._pan = PanGesture()
        self._selected_node_id: str | None = None
        self._sinks: list[SelectionSink] = []

    @classmethod
    def attach(cls, store: JourneyStore, **kwargs) -> "GraphCanvas":
        "Create a canvas that follows every snapshot `store` publishes."
        canvas = cls(store.journey, **kwargs)
        store.subscribe(canvas.set_journey)
        return canvas

    @property
    def journey(self) -> Journey:
        return self._journey

    def set_journey(self, journey: Journey) -> None:
        "Show a new snapshot. A selected node that no longer exists is deselected."
        self._journey = journey
        if self._selected_node_id not in journey.nodes_dict:
            self._select(None)

    @property
    def scene(self) -> Scene:
        "The current frame, rebuilt from the snapshot and the transform."
        return build_scene(self._journey, self.transform, self._selected_node_id)

    # Selection

    def on_selection_change(self, sink: SelectionSink) -> Callable[[], None]:
        "Register a selection sink. Returns an unsubscribe callable."
        self._sinks.append(sink)

        def unsubscribe() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return unsubscribe

    @property
    def selected_node(self) -> Node | None:
        if self._selected_node_id is None:
            return None
        return self._journey.nodes_dict.get(self._selected_node_id)

    def selected_details(self) -> NodeDetails | None:
        if self._selected_node_id is None:
            return None
        return node_details(self._journey, self._selected_node_id)

    def _select(self, node_id: str | None) -> None:
        if node_id == self._selected_node_id:
            return
        self._selected_node_id = node_id
        logger.info(f"Selected node: {node_id}")
        node = self.selected_node
        for sink in list(self._sinks):
            sink(node)

    def click(self, screen_x: float, screen_y: float) -> Node | None:
        """
        Toggle selection of the node under the pointer. Clicking the selected
        node clears the selection; clicking the background changes nothing.
        """
        node_id = self.scene.hit_test(screen_x, screen_y)
        if node_id is not None:
            self._select(None if node_id == self._selected_node_id else node_id)
        return self.selected_node

    # Zoom

    def wheel(self, screen_x: float, screen_y: float, delta_y: float) -> ViewportTransform:
        "Zoom towards the pointer using the transform current at this event."
        self.transform = self.transform.zoom_at(
            screen_x, screen_y, wheel_zoom_factor(delta_y)
        )
        return self.transform

    def zoom_in(self) -> ViewportTransform:
        self.transform = self.transform.rescaled(BUTTON_ZOOM_STEP)
        return self.transform

    def zoom_out(self) -> ViewportTransform:
        self.transform = self.transform.rescaled(1 / BUTTON_ZOOM_STEP)
        return self.transform

    def reset_view(self) -> ViewportTransform:
        self.transform = ViewportTransform()
        return self.transform

    # Pan

    @property
    def is_panning(self) -> bool:
        return self._pan.active

    def pointer_down(self, screen_x: float, screen_y: float) -> bool:
        "Start panning unless the pointer is over a node. Returns whether a pan began."
        if self.scene.hit_test(screen_x, screen_y) is not None:
            return False
        self._pan.begin((screen_x, screen_y), self.transform)
        return True

    def pointer_move(self, screen_x: float, screen_y: float) -> ViewportTransform:
        self.transform = self._pan.move((screen_x, screen_y), self.transform)
        return self.transform

    def pointer_up(self) -> None:
        self._pan.end()

    def pointer_leave(self) -> None:
        self._pan.end()
