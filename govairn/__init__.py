"""GovAIrn decision engine: persona-aware DAO proposal recommendations."""

__version__ = "0.1.0"
