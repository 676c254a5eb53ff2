"""
Recorded event models.

Each interaction kind is its own model, tagged by a literal ``type`` field so
a list of events validates into the right classes and serializes back to the
same flat records.
"""

from __future__ import annotations
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from uireplay.models.geometry import Point


class EventType(str, Enum):
    CLICK = "click"
    DOUBLE_CLICK = "double_click"
    DRAG = "drag"
    PAN = "pan"
    RIGHT_CLICK = "right_click"
    SCROLL = "scroll"
    KEY = "key"
    WAIT = "wait"
    SET_CLIPBOARD_IMAGE = "set_clipboard_image"


class ScrollDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


class ObjectRef(BaseModel):
    """Identifies the entity under the pointer when a drag started."""

    model_config = ConfigDict(frozen=True)

    type: str
    id: str
    click_offset: Point = Field(default_factory=Point)


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    time: int = Field(default=0, ge=0, description="Milliseconds since recording start")
    wait_after: int = Field(default=0, ge=0, description="Real-time pause after this step (ms)")
    note: Optional[str] = Field(default=None, description="Free-text annotation")


class ClickEvent(_EventBase):
    type: Literal["click"] = "click"
    pos: Point
    ctrl: bool = False
    shift: bool = False


class DoubleClickEvent(_EventBase):
    type: Literal["double_click"] = "double_click"
    pos: Point
    ctrl: bool = False
    shift: bool = False


class DragEvent(_EventBase):
    type: Literal["drag"] = "drag"
    from_pos: Point = Field(alias="from")
    to_pos: Point = Field(alias="to")
    no_drop: bool = False
    object_ref: Optional[ObjectRef] = None
    world_to: Optional[Point] = None
    cell_to: Optional[Point] = None


class PanEvent(_EventBase):
    type: Literal["pan"] = "pan"
    from_pos: Point = Field(alias="from")
    to_pos: Point = Field(alias="to")


class RightClickEvent(_EventBase):
    type: Literal["right_click"] = "right_click"
    pos: Point


class ScrollEvent(_EventBase):
    type: Literal["scroll"] = "scroll"
    direction: ScrollDirection
    pos: Point
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    factor: float = 1.0


class KeyEvent(_EventBase):
    type: Literal["key"] = "key"
    keycode: str
    ctrl: bool = False
    shift: bool = False
    mouse_pos: Optional[Point] = None


class WaitEvent(_EventBase):
    type: Literal["wait"] = "wait"
    duration: int = Field(default=1000, ge=0, description="Milliseconds")


class SetClipboardImageEvent(_EventBase):
    type: Literal["set_clipboard_image"] = "set_clipboard_image"
    path: str
    mouse_pos: Optional[Point] = None


RecordedEvent = Annotated[
    Union[
        ClickEvent,
        DoubleClickEvent,
        DragEvent,
        PanEvent,
        RightClickEvent,
        ScrollEvent,
        KeyEvent,
        WaitEvent,
        SetClipboardImageEvent,
    ],
    Field(discriminator="type"),
]
