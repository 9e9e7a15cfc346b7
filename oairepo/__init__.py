"""OAI-PMH 2.0 repository responder."""

__version__ = "0.3.0"
