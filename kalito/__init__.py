"""kalito - hybrid conversation memory for chat agents."""

__version__ = "0.3.0"
__logo__ = "🧠"
