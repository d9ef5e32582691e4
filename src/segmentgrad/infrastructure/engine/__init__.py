from ._engine import ENGINE, Engine

__all__ = [Engine.__name__, "ENGINE"]
