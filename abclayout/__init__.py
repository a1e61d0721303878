"""abclayout: horizontal layout and geometry engine for ABC tunes."""

__version__ = "0.1.0"
