"""bundlebot: multi-wallet bundle execution, live trade stream and limit orders."""

__version__ = "0.1.0"
