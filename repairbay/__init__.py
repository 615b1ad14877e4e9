"""repairbay: local storage for an engine repair assistant (parts catalog + repair progress)."""

__version__ = "0.1.0"
