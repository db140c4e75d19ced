"""termxfer: a two-pane terminal file transfer client."""

__version__ = "0.4.0"
