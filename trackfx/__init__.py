"""trackfx: detect, track and apply effects to objects in video."""

__version__ = "0.1.0"
