"""autocrud: schema discovery and dynamic SQL synthesis for REST-style database APIs."""

__version__ = "0.1.0"
