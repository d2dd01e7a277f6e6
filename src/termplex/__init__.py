"""termplex: multiplexed browser terminals with tmux integration."""

__version__ = "0.1.0"

__all__ = ["__version__"]
