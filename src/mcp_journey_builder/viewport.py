from pydantic import BaseModel, ConfigDict, Field

from .layout import Point

MIN_SCALE = 0.1
MAX_SCALE = 3.0
WHEEL_ZOOM_IN = 1.1
WHEEL_ZOOM_OUT = 0.9
BUTTON_ZOOM_STEP = 1.2


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def wheel_zoom_factor(delta_y: float) -> float:
    "Scrolling down zooms out, scrolling up zooms in. A zero delta keeps the scale."
    if delta_y == 0:
        return 1.0
    return WHEEL_ZOOM_OUT if delta_y > 0 else WHEEL_ZOOM_IN


class ViewportTransform(BaseModel):
    "Affine scene-to-screen transform: screen = scene * scale + translate."

    model_config = ConfigDict(frozen=True)

    translate_x: float = 0.0
    translate_y: float = 0.0
    scale: float = Field(default=1.0, gt=0)

    def to_screen(self, x: float, y: float) -> Point:
        return (x * self.scale + self.translate_x, y * self.scale + self.translate_y)

    def to_scene(self, screen_x: float, screen_y: float) -> Point:
        return (
            (screen_x - self.translate_x) / self.scale,
            (screen_y - self.translate_y) / self.scale,
        )

    def zoom_at(
        self,
        screen_x: float,
        screen_y: float,
        factor: float,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE,
    ) -> "ViewportTransform":
        """
        Zoom by `factor` keeping the scene point under (screen_x, screen_y) fixed
        on screen. The resulting scale is clamped to [min_scale, max_scale].
        """
        new_scale = clamp(self.scale * factor, min_scale, max_scale)
        if new_scale == self.scale:
            return self
        ratio = new_scale / self.scale
        return ViewportTransform(
            translate_x=screen_x - (screen_x - self.translate_x) * ratio,
            translate_y=screen_y - (screen_y - self.translate_y) * ratio,
            scale=new_scale,
        )

    def rescaled(
        self,
        factor: float,
        min_scale: float = MIN_SCALE,
        max_scale: float = MAX_SCALE,
    ) -> "ViewportTransform":
        "Change only the scale, as the toolbar zoom buttons do."
        return self.model_copy(
            update={"scale": clamp(self.scale * factor, min_scale, max_scale)}
        )

    def translated_to(self, translate_x: float, translate_y: float) -> "ViewportTransform":
        return self.model_copy(
            update={"translate_x": translate_x, "translate_y": translate_y}
        )

    @property
    def svg_transform(self) -> str:
        return f"translate({self.translate_x}, {self.translate_y}) scale({self.scale})"


class PanGesture(BaseModel):
    """
    Drag state for panning: pointer-down on the background, any number of
    moves, then pointer-up or pointer-leave.
    """

    active: bool = False
    start_pointer: Point = (0.0, 0.0)
    start_translate: Point = (0.0, 0.0)

    def begin(self, pointer: Point, transform: ViewportTransform) -> None:
        self.active = True
        self.start_pointer = pointer
        self.start_translate = (transform.translate_x, transform.translate_y)

    def move(self, pointer: Point, transform: ViewportTransform) -> ViewportTransform:
        "Return the transform for the current pointer, or `transform` when idle."
        if not self.active:
            return transform
        return transform.translated_to(
            self.start_translate[0] + pointer[0] - self.start_pointer[0],
            self.start_translate[1] + pointer[1] - self.start_pointer[1],
        )

    def end(self) -> None:
        self.active = False
