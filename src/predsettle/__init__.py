"""predsettle - resolution and settlement for oracle-priced binary markets."""

__version__ = "0.1.0"
