"""Physicochemical index functions keyed by name.

Each index takes a validated, uppercase sequence of standard residues and
returns a float. Biopython's ProteinAnalysis supplies the classical
ProtParam indices; aliphatic and Boman indices use residue tables.
"""

from typing import Callable

from Bio.SeqUtils.ProtParam import ProteinAnalysis

STANDARD_RESIDUES = frozenset("ACDEFGHIKLMNPQRSTVWY")

# Boman (2003) solubility scale, kcal/mol
BOMAN_SCALE = {
    "L": 4.92, "I": 4.92, "V": 4.04, "F": 2.98, "M": 2.35,
    "W": 2.33, "A": 1.81, "C": 1.28, "G": 0.94, "Y": -0.14,
    "T": -2.57, "S": -3.40, "H": -4.66, "Q": -5.54, "K": -5.55,
    "N": -6.64, "E": -6.81, "D": -8.72, "R": -14.92, "P": 0.0,
}

IndexFunction = Callable[[str], float]


def length(sequence: str) -> float:
    return float(len(sequence))


def molecular_weight(sequence: str) -> float:
    """Average molecular weight in Daltons."""
    return ProteinAnalysis(sequence).molecular_weight()


def isoelectric_point(sequence: str) -> float:
    return ProteinAnalysis(sequence).isoelectric_point()


def net_charge(sequence: str, ph: float = 7.0) -> float:
    """Net charge at the given pH (default 7.0)."""
    return ProteinAnalysis(sequence).charge_at_pH(ph)


def instability_index(sequence: str) -> float:
    """Guruprasad instability index; values above 40 suggest instability."""
    return ProteinAnalysis(sequence).instability_index()


def gravy(sequence: str) -> float:
    """Grand average of hydropathy (Kyte-Doolittle)."""
    return ProteinAnalysis(sequence).gravy()


def aromaticity(sequence: str) -> float:
    return ProteinAnalysis(sequence).aromaticity()


def aliphatic_index(sequence: str) -> float:
    """Ikai aliphatic index: relative volume of aliphatic side chains.

    100 * (x_A + 2.9 * x_V + 3.9 * (x_I + x_L)) with x as mole fractions.
    """
    n = len(sequence)
    fraction = {aa: sequence.count(aa) / n for aa in "AVIL"}
    return 100.0 * (
        fraction["A"]
        + 2.9 * fraction["V"]
        + 3.9 * (fraction["I"] + fraction["L"])
    )


def boman_index(sequence: str) -> float:
    """Boman protein-binding potential: negated mean solubility."""
    return -sum(BOMAN_SCALE[aa] for aa in sequence) / len(sequence)


INDEX_FUNCTIONS: dict[str, IndexFunction] = {
    "length": length,
    "molecular_weight": molecular_weight,
    "isoelectric_point": isoelectric_point,
    "net_charge": net_charge,
    "instability_index": instability_index,
    "gravy": gravy,
    "aromaticity": aromaticity,
    "aliphatic_index": aliphatic_index,
    "boman_index": boman_index,
}
