"""Topic name constants for the visualization sink.

Callers that forward artifacts to a message bus or viewer should use
these constants rather than hardcoded strings.
"""


class Topics:
    """Visualization topic names."""

    # Per-pose artifacts (published once per evaluated pose)
    FOV_WIREFRAME = "culling.fov"
    VISIBLE_CLOUD = "culling.visible"

    # Campaign progress (published after each fold)
    COVERAGE_UPDATE = "culling.coverage"
