import re
from typing import Any, Dict, Tuple

from ..core.constants import Polarity


class ItemParser:
    """
    Maps MGF/MSP header keys onto spectrum variable names and parses their values.

    Keys are compared after normalization (case, spaces, underscores and
    slashes ignored). Unknown keys become lower snake_case names and keep
    their text value.
    """
    column_aliases = {
        "title": ["Name"],
        "ms_level": ["MSLevel"],
        "rtime": ["RTInSeconds", "RetentionTime", "RT"],
        "precursor_mz": ["PepMass", "PrecursorMZ"],
        "precursor_intensity": [],
        "precursor_charge": ["Charge", "PrecursorCharge"],
        "polarity": ["IonMode", "IonPolarity"],
        "collision_energy": ["CollisionEnergy"],
        "acquisition_num": ["Scans", "ScanNumber"],
        "scan_index": [],
        "centroided": [],
        "num_peaks": ["NumPeaks"],
    }

    polarity_aliases = {
        Polarity.POSITIVE: ["positive", "pos", "p", "+", "1"],
        Polarity.NEGATIVE: ["negative", "neg", "n", "-", "0"],
    }

    _to_canonical_key: Dict[str, str] = {}
    _to_polarity: Dict[str, Polarity] = {}

    def __init__(self):
        self._initialize()

    @classmethod
    def to_snake(cls, key: str) -> str:
        """
        Convert a header key to lower snake_case.
        Example: 'SpectrumType' -> 'spectrum_type', 'Instrument Type' -> 'instrument_type'
        """
        key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key.strip())
        key = re.sub(r"[^0-9a-zA-Z]+", "_", key).strip("_").lower()
        if not key or key[0].isdigit():
            key = "_" + key
        return key

    @classmethod
    def _normalize_key(cls, key: str) -> str:
        return re.sub(r"[\s_/]+", "", key).lower()

    @classmethod
    def _initialize(cls):
        """Build the alias -> canonical lookup tables once."""
        if cls._to_canonical_key:
            return
        for canonical_key, aliases in cls.column_aliases.items():
            cls._to_canonical_key[cls._normalize_key(canonical_key)] = canonical_key
            for alias in aliases:
                cls._to_canonical_key.setdefault(cls._normalize_key(alias), canonical_key)
        for polarity, aliases in cls.polarity_aliases.items():
            for alias in aliases:
                cls._to_polarity[alias] = polarity

    @classmethod
    def to_canonical_key(cls, name: str) -> str:
        normalized = cls._normalize_key(name)
        if normalized not in cls._to_canonical_key:
            cls._to_canonical_key[normalized] = cls.to_snake(name)
        return cls._to_canonical_key[normalized]

    # --- value parsers ---
    @staticmethod
    def _first_number(value: str) -> float:
        match = re.search(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?", value)
        if match is None:
            raise ValueError(f"No numeric value in '{value}'")
        return float(match.group(0))

    @classmethod
    def parse_charge(cls, value: str) -> int:
        """'2+' -> 2, '1-' -> -1, '3' -> 3. Multiple charges keep the first."""
        value = value.split(",")[0].split(" and ")[0].strip()
        match = re.fullmatch(r"([+-]?)(\d+)([+-]?)", value)
        if match is None:
            raise ValueError(f"Invalid charge '{value}'")
        sign = match.group(1) or match.group(3)
        charge = int(match.group(2))
        return -charge if sign == "-" else charge

    @classmethod
    def parse_polarity(cls, value: str) -> Polarity:
        return cls._to_polarity.get(value.strip().lower(), Polarity.UNKNOWN)

    @classmethod
    def parse_rtime(cls, value: str) -> float:
        rtime = cls._first_number(value)
        if "min" in value.lower():
            rtime *= 60.0
        return rtime

    @classmethod
    def parse_item_pair(cls, key: str, value: str) -> Tuple[str, Any]:
        """
        Returns:
            (variable name, parsed value). ``precursor_mz`` values like
            PEPMASS "445.1 1200" are returned as (mz, intensity).
        """
        key, value = key.strip(), value.strip()
        canonical_key = cls.to_canonical_key(key)
        if canonical_key in ("ms_level", "acquisition_num", "scan_index", "num_peaks"):
            parsed: Any = int(cls._first_number(value))
        elif canonical_key == "rtime":
            parsed = cls.parse_rtime(value)
        elif canonical_key == "precursor_mz":
            items = value.split()
            parsed = (float(items[0]), float(items[1]) if len(items) > 1 else None)
        elif canonical_key in ("precursor_intensity", "collision_energy"):
            parsed = cls._first_number(value)
        elif canonical_key == "precursor_charge":
            parsed = cls.parse_charge(value)
        elif canonical_key == "polarity":
            parsed = cls.parse_polarity(value)
        elif canonical_key == "centroided":
            parsed = value.lower() in ("1", "true", "yes", "t")
        else:
            parsed = value
        return canonical_key, parsed
