"""Observed MS/MS spectrum container."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple, Tuple

import numpy as np

from .constants import PROTON_MASS


class SpectrumReference(NamedTuple):
    """Identity of a spectrum kept by matches after the peaks are gone."""

    scan: int
    precursor_mz: float


@dataclass
class Spectrum:
    """One MS/MS spectrum with its candidate precursor charges.

    Peaks are stored as parallel float64 arrays sorted by m/z.
    """

    scan: int
    precursor_mz: float
    mz: np.ndarray
    intensity: np.ndarray
    charges: Tuple[int, ...] = field(default=(2, 3))

    def __post_init__(self):
        self.mz = np.asarray(self.mz, dtype=np.float64)
        self.intensity = np.asarray(self.intensity, dtype=np.float64)
        if self.mz.shape != self.intensity.shape:
            raise ValueError(
                f"mz and intensity must have the same length "
                f"({len(self.mz)} != {len(self.intensity)})"
            )
        order = np.argsort(self.mz, kind='stable')
        self.mz = self.mz[order]
        self.intensity = self.intensity[order]

    def neutral_mass(self, charge: int) -> float:
        """Neutral precursor mass assuming ``charge``."""
        return (self.precursor_mz - PROTON_MASS) * charge

    @property
    def max_peak_mz(self) -> float:
        return float(self.mz[-1]) if len(self.mz) else 0.0

    @property
    def n_peaks(self) -> int:
        return len(self.mz)

    def reference(self) -> SpectrumReference:
        return SpectrumReference(self.scan, self.precursor_mz)
