"""Background replacement service package."""

__version__ = "1.0.0"
__description__ = "Removes a photo's background and generates a new one from a text prompt"
