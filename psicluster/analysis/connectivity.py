import logging
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd
from matplotlib.axes import Axes

from psicluster.core.composition import ClusterType
from psicluster.core.network import ReactionNetwork

logger = logging.getLogger(__name__)


def _format_distance(distance) -> str:
    if distance == (0.0, 0.0):
        return ""
    return f"({distance[0]:+.2f}, {distance[1]:+.2f})"


def reactions_dataframe(network: ReactionNetwork) -> pd.DataFrame:
    """List every reaction record of the network.

    Args:
        network (ReactionNetwork): Network with built connectivity.

    Returns:
        pd.DataFrame: One row per record with the owning cluster, the kind of record
            (production, combination, dissociation or emission), the two other clusters,
            the group distance of the owner and the current rate constant.
    """
    rows = []
    for cluster in network:
        for pair in cluster.reacting_pairs:
            rows.append({
                "cluster": cluster.name,
                "kind": "production",
                "first": pair.first.name,
                "second": pair.second.name,
                "distance": _format_distance(pair.distance),
                "k_constant": pair.k_constant,
            })
        for combining in cluster.combining_reactants:
            rows.append({
                "cluster": cluster.name,
                "kind": "combination",
                "first": combining.combining.name,
                "second": None,
                "distance": _format_distance(combining.distance),
                "k_constant": combining.k_constant,
            })
        for pair in cluster.dissociating_pairs:
            rows.append({
                "cluster": cluster.name,
                "kind": "dissociation",
                "first": pair.first.name,
                "second": pair.second.name,
                "distance": _format_distance(pair.distance),
                "k_constant": pair.k_constant,
            })
        for pair in cluster.emission_pairs:
            rows.append({
                "cluster": cluster.name,
                "kind": "emission",
                "first": pair.first.name,
                "second": pair.second.name,
                "distance": _format_distance(pair.distance),
                "k_constant": pair.k_constant,
            })
    return pd.DataFrame(rows, columns=["cluster", "kind", "first", "second", "distance", "k_constant"])


def to_networkx(network: ReactionNetwork) -> nx.DiGraph:
    """
    Create a directed graph of reactant -> product edges.

    Productions give edges from both reactants to the product, dissociations give edges
    from the parent to both emitted clusters. Edges carry the kind of reaction and the
    largest rate constant seen between the two clusters.

    Parameters
    ----------
    network : ReactionNetwork

    Returns
    -------
    graph : nx.DiGraph
    """
    graph = nx.DiGraph()
    for cluster in network:
        graph.add_node(cluster.name, id=cluster.id, type=cluster.type.value, size=cluster.size)

    def add_edge(source: str, target: str, kind: str, k_constant: float) -> None:
        if graph.has_edge(source, target):
            data = graph.edges[source, target]
            data["k_constant"] = max(data["k_constant"], k_constant)
        else:
            graph.add_edge(source, target, kind=kind, k_constant=k_constant)

    for cluster in network:
        for pair in cluster.reacting_pairs:
            add_edge(pair.first.name, cluster.name, "production", pair.k_constant)
            add_edge(pair.second.name, cluster.name, "production", pair.k_constant)
        for pair in cluster.emission_pairs:
            add_edge(cluster.name, pair.first.name, "emission", pair.k_constant)
            add_edge(cluster.name, pair.second.name, "emission", pair.k_constant)
    return graph


def plot_diagonal_fill(
    network: ReactionNetwork,
    ax: Optional[Axes] = None,
    figsize: Tuple[int, int] = (8, 8),
    show_labels: bool = True,
) -> Axes:
    """Plot the sparsity pattern of the Jacobian.

    Args:
        network (ReactionNetwork): Network with built connectivity.
        ax (Optional[Axes], optional): Axes to plot on. Defaults to None.
        figsize (Tuple[int, int], optional): Figure size. Defaults to (8, 8).
        show_labels (bool, optional): Label the rows and columns with the cluster names. Defaults to True.

    Returns:
        Axes: The axes with the plot.
    """
    dof = network.get_dof()
    fill = network.get_diagonal_fill().reshape(dof, dof)
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    ax.spy(fill, markersize=max(1, 200 // max(dof, 1)))
    if show_labels:
        labels = [cluster.name for cluster in network]
        for cluster in network.get_all(ClusterType.SUPER):
            labels += [f"{cluster.name} m_He", f"{cluster.name} m_V"]
        ticks = np.arange(dof)
        ax.set_xticks(ticks)
        ax.set_xticklabels(labels, rotation=90, fontsize=6)
        ax.set_yticks(ticks)
        ax.set_yticklabels(labels, fontsize=6)
    ax.set_title(f"Diagonal fill ({int(fill.sum())} non-zeros)")
    logger.debug(f"Plotted diagonal fill of {dof} degrees of freedom")
    return ax
