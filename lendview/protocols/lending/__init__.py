"""Lending pool contracts: reads, event shapes and operation builders."""
from .events import EVENT_SHAPES, decode_log
from .operations import OperationFactory
from .reader import LendingPoolReader

__all__ = ["EVENT_SHAPES", "LendingPoolReader", "OperationFactory", "decode_log"]
