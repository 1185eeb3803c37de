"""Error taxonomy for visibility and coverage queries."""


class CullingError(ValueError):
    """Base class for configuration and input errors raised by this package."""
    pass


class InvalidPoseError(CullingError):
    """Raised when a pose contains non-finite values or a degenerate rotation."""
    pass


class DegenerateGridError(CullingError):
    """Raised when a voxel grid is requested with a non-positive leaf size."""
    pass


class InvalidFieldOfViewError(CullingError):
    """Raised when field-of-view angles or clip distances are unusable."""
    pass


class EmptyModelWarning(UserWarning):
    """Issued when a grid is built over a model with zero points.

    Not fatal: the grid is empty, nothing occludes anything, visible
    subsets are empty and coverage stays at zero.
    """
    pass
