"""
PsyLink - Moteur d'association et d'allocation de licences.

Relie psychologues, entreprises et patients, et garantit les invariants
de capacité du pool de licences de chaque entreprise.
"""

__version__ = "0.1.0"
