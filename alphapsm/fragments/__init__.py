"""Ion series prediction for SP and XCORR scoring."""

from .generator import (
    IonConstraint,
    IonSeries,
    calculate_neutral_mass,
    encode_peptide_to_ord,
    generate_ions,
    predict_ions,
)

__all__ = [
    'IonConstraint',
    'IonSeries',
    'calculate_neutral_mass',
    'encode_peptide_to_ord',
    'generate_ions',
    'predict_ions',
]
