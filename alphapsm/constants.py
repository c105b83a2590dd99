"""Physical constants, binning widths and calibration constants.

This module collects every numeric constant used by the scoring, calibration
and q-value code so that kernels and tests share one source of truth.

Constants are provided in both dictionary and ord()-indexed array formats
for compatibility with both standard Python and Numba JIT-compiled code.

Key Features
------------
- Monoisotopic masses (proton, H2O, NH3, CO, residues)
- ord()-indexed AA_MASSES array for Numba kernels
- Spectrum binning widths and preprocessing windows for SP/XCORR
- Weibull shift search ranges per score type
- Numerical cut-offs for p-value conversion and q-value lookup

Sources
-------
- NIST physical constants: https://physics.nist.gov/cgi-bin/cuu/Value
- IUPAC amino acid masses: https://www.unimod.org/masses.html
"""

import sys

import numpy as np

# =============================================================================
# Fundamental Physical Constants (NIST values)
# =============================================================================

# Proton mass (NOT hydrogen atom mass)
PROTON_MASS = 1.007276466622  # Da

# Water mass (H2O)
H2O_MASS = 18.010564684  # Da

# Ammonia mass (NH3)
NH3_MASS = 17.026549101  # Da

# Carbon monoxide mass (CO), difference between b- and a-ions
CO_MASS = 27.994914620  # Da

# =============================================================================
# Amino Acid Monoisotopic Residue Masses (Da)
# =============================================================================

AA_MASSES_DICT = {
    'A': 71.037114,
    'R': 156.101111,
    'N': 114.042927,
    'D': 115.026943,
    'C': 103.009185,
    'E': 129.042593,
    'Q': 128.058578,
    'G': 57.021464,
    'H': 137.058912,
    'I': 113.084064,
    'L': 113.084064,
    'K': 128.094963,
    'M': 131.040485,
    'F': 147.068414,
    'P': 97.052764,
    'S': 87.032028,
    'T': 101.047679,
    'W': 186.079313,
    'Y': 163.063320,
    'V': 99.068414,
}

# Access via: AA_MASSES[ord('A')] -> 71.037114
AA_MASSES = np.zeros(256, dtype=np.float64)
for aa, mass in AA_MASSES_DICT.items():
    AA_MASSES[ord(aa)] = mass

# =============================================================================
# Ion Types
# =============================================================================

ION_TYPE_B = 0
ION_TYPE_Y = 1
ION_TYPE_A = 2

# =============================================================================
# Spectrum Preprocessing
# =============================================================================

# Width of one m/z bin for monoisotopic fragment masses
BIN_WIDTH_MONO = 1.0005079

# Peaks above precursor_mz * charge + MASS_CUTOFF_PADDING are ignored
MASS_CUTOFF_PADDING = 50.0

# Peaks within +/- this m/z of the precursor are ignored
PRECURSOR_EXCLUSION_WINDOW = 15.0

# SP: half width of the sliding window used when extracting peaks
SP_PEAK_WINDOW = 50

# SP: upper bound on the number of peaks kept after extraction
SP_MAX_TOP_PEAKS = 200

# SP: normalisation target for the intensity array
SP_MAX_INTENSITY = 100.0

# XCORR: number of independently normalised m/z regions
XCORR_NUM_REGIONS = 10

# XCORR: normalisation target of every region
XCORR_REGION_MAX = 50.0

# XCORR: half width of the flanking background window
XCORR_MAX_OFFSET = 75

# XCORR: theoretical peak heights
XCORR_PRIMARY_HEIGHT = 50.0
XCORR_FLANK_HEIGHT = 25.0
XCORR_LOSS_HEIGHT = 10.0
XCORR_A_ION_HEIGHT = 10.0

# =============================================================================
# Calibration
# =============================================================================

# delta_cn reported when a collection holds a single match
DELTA_CN_SINGLE_MATCH = 0.000001

# Newton-Raphson for the EVD scale parameter
EVD_MAX_ITERATIONS = 10000
EVD_TOLERANCE = 0.001

# Weibull shift search (min, max, step) per raw score
WEIBULL_XCORR_SHIFT = (-5.0, 5.0, 0.05)
WEIBULL_SP_SHIFT = (-100.0, 300.0, 5.0)

# Bonferroni: use the exact formula above either threshold
BONFERRONI_P_CUTOFF = 1e-4
BONFERRONI_PN_CUTOFF = 1e-2

# EVD p-value cut-offs
DBL_EPSILON = sys.float_info.epsilon
EVD_LOWER_CUTOFF = -np.log(-np.log(DBL_EPSILON))
EVD_UPPER_CUTOFF = 2.3 * 308
EVD_SMALL_P = 1e-7

# Marker stored for matches outside the top ranks that received no p-value
P_VALUE_NA = -1.0

# Tolerance used when mapping p-values back to their q-values
QVALUE_EPSILON = 1e-14

# =============================================================================
# Collections
# =============================================================================

# Hard ceiling on the number of matches a collection may hold
MAX_MATCHES = 1_000_000
