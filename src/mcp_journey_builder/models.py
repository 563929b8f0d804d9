from pydantic import BaseModel, Field

from .journey_model import Journey
from .scene import Scene


class ExampleJourneyResponse(BaseModel):
    """Response model for the `get_example_journey` tool."""

    journey: Journey = Field(description="The example journey.")
    mermaid_config: str = Field(
        description="The Mermaid visualization configuration for the example journey."
    )


class RenderedJourneyResponse(BaseModel):
    """Response model for the `render_journey_svg` tool."""

    scene: Scene = Field(description="The renderer independent scene description.")
    svg: str = Field(description="The scene rendered as an SVG document.")
