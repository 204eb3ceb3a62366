from .constants import PeakFormat, Polarity
from .PeakSeries import PeakSeries
from .PeakCodec import PackedPeakCodec, ExplodedPeakCodec, get_codec
from .SpectraIndex import SpectraIndex
from .Overlay import Overlay
from .SpectraStore import SpectraStore
from .Spectra import Spectra
from .ChunkedIterator import chunked_apply, iter_chunks

__all__ = [
    "PeakFormat",
    "Polarity",
    "PeakSeries",
    "PackedPeakCodec",
    "ExplodedPeakCodec",
    "get_codec",
    "SpectraIndex",
    "Overlay",
    "SpectraStore",
    "Spectra",
    "chunked_apply",
    "iter_chunks",
]
