"""Engine components driving search → profile → affiliation in the browser."""

from .dedup import find_duplicate, normalize, same_work
from .pacing import pause_between, random_delay
from .page_agent import PageAgent
from .surface import (
    BrowserRuntime,
    PlaywrightSurfaceController,
    SurfaceController,
    SurfaceHandle,
)
from .waiting import wait_for_element, wait_until

__all__ = [
    "BrowserRuntime",
    "PageAgent",
    "PlaywrightSurfaceController",
    "SurfaceController",
    "SurfaceHandle",
    "find_duplicate",
    "normalize",
    "pause_between",
    "random_delay",
    "same_work",
    "wait_for_element",
    "wait_until",
]
