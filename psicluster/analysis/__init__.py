"""
Analysis module for reaction network inspection and plotting.

This module provides functions to list the reactions of a network, export
them as a graph and visualize the Jacobian sparsity pattern.
"""

from .connectivity import plot_diagonal_fill, reactions_dataframe, to_networkx

__all__ = [
    'reactions_dataframe',
    'to_networkx',
    'plot_diagonal_fill',
]
