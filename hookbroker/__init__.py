"""Priority-ordered job dispatching, recovery sweeps and a small HTTP broker demo."""

__version__ = "0.2.0"
__all__ = ["queue", "recovery", "dispatcher", "server"]