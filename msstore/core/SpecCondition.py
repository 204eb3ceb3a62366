from __future__ import annotations
import numpy as np
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable, Optional, Union

from .constants import Polarity

if TYPE_CHECKING:
    from .Spectra import Spectra


class SpecCondition(ABC):
    """
    Abstract base class for a condition to evaluate on spectra.
    Evaluates all spectra at once, returning a boolean mask of shape [n_spectra].
    Conditions only read the variables they need (one bulk query each).
    """

    @abstractmethod
    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        """
        Evaluate condition across all spectra in the collection.

        Args:
            spectra (Spectra): Collection to evaluate.

        Returns:
            np.ndarray: Boolean mask of shape [n_spectra], True for spectra kept.
        """
        pass

    def __and__(self, other: "SpecCondition") -> "SpecCondition":
        return AndSpecCondition(self, other)

    def __or__(self, other: "SpecCondition") -> "SpecCondition":
        return OrSpecCondition(self, other)

    def __invert__(self) -> "SpecCondition":
        return NotSpecCondition(self)


class AndSpecCondition(SpecCondition):
    def __init__(self, cond1: SpecCondition, cond2: SpecCondition):
        self.cond1 = cond1
        self.cond2 = cond2

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        return self.cond1.evaluate(spectra) & self.cond2.evaluate(spectra)


class OrSpecCondition(SpecCondition):
    def __init__(self, cond1: SpecCondition, cond2: SpecCondition):
        self.cond1 = cond1
        self.cond2 = cond2

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        return self.cond1.evaluate(spectra) | self.cond2.evaluate(spectra)


class NotSpecCondition(SpecCondition):
    def __init__(self, cond: SpecCondition):
        self.cond = cond

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        return ~self.cond.evaluate(spectra)


class VariableInCondition(SpecCondition):
    """
    Select spectra whose variable value is one of ``values``.
    Missing values never match.
    """
    def __init__(self, variable: str, values: Iterable):
        self.variable = variable
        self.values = list(values)

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        column = spectra.read_variable(self.variable)
        return np.isin(column, np.asarray(self.values, dtype=column.dtype if column.dtype != object else object))


class VariableRangeCondition(SpecCondition):
    """
    Select spectra whose numeric variable lies within [low, high].
    Either bound may be None (open). Missing values never match.
    """
    def __init__(self, variable: str, low: Optional[float] = None, high: Optional[float] = None):
        if low is not None and high is not None and low > high:
            raise ValueError(f"Lower bound {low} is greater than upper bound {high}")
        self.variable = variable
        self.low = low
        self.high = high

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        column = np.asarray(spectra.read_variable(self.variable), dtype=np.float64)
        mask = ~np.isnan(column)
        if self.low is not None:
            mask &= column >= self.low
        if self.high is not None:
            mask &= column <= self.high
        return mask


class MsLevelCondition(VariableInCondition):
    """
    Select spectra by MS level.

    Example:
        ms2 = spectra.filter(MsLevelCondition(2))
    """
    def __init__(self, levels: Union[int, Iterable[int]]):
        if isinstance(levels, (int, np.integer)):
            levels = [levels]
        super().__init__("ms_level", [int(v) for v in levels])

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        column = np.asarray(spectra.read_variable(self.variable), dtype=np.float64)
        return np.isin(column, np.asarray(self.values, dtype=np.float64))


class RtRangeCondition(VariableRangeCondition):
    """Select spectra with retention time (seconds) within [low, high]."""
    def __init__(self, low: Optional[float] = None, high: Optional[float] = None):
        super().__init__("rtime", low, high)


class PrecursorMzRangeCondition(VariableRangeCondition):
    """Select spectra with precursor m/z within [low, high]."""
    def __init__(self, low: Optional[float] = None, high: Optional[float] = None):
        super().__init__("precursor_mz", low, high)


class DataOriginCondition(VariableInCondition):
    """Select spectra originating from the given source file name(s)."""
    def __init__(self, origins: Union[str, Iterable[str]]):
        if isinstance(origins, str):
            origins = [origins]
        super().__init__("data_origin", origins)

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        column = spectra.read_variable(self.variable)
        allowed = set(self.values)
        return np.fromiter((v in allowed for v in column), dtype=bool, count=len(column))


class PolarityCondition(VariableInCondition):
    """Select spectra by polarity."""
    def __init__(self, polarity: Union[Polarity, int, Iterable]):
        if isinstance(polarity, (int, np.integer)):
            polarity = [polarity]
        super().__init__("polarity", [int(Polarity(p)) for p in polarity])

    def evaluate(self, spectra: "Spectra") -> np.ndarray:
        column = np.asarray(spectra.read_variable(self.variable), dtype=np.float64)
        return np.isin(column, np.asarray(self.values, dtype=np.float64))
