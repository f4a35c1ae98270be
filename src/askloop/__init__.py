"""askloop: recurring questions to an answer service, delivered through chat."""

__version__ = "0.1.0"
