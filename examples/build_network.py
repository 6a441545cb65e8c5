"""Build a small helium / point defect network and inspect it."""
import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from psicluster.analysis import plot_diagonal_fill, reactions_dataframe, to_networkx
from psicluster.io import InputParser

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="[%(levelname)s]:%(name)s:%(message)s")

logging.getLogger("psicluster").setLevel(logging.INFO)

# Paths relative to script location (run from project root: python examples/build_network.py)
examples_dir = Path(__file__).resolve().parent
config_path = examples_dir / "tungsten_network.yaml"

# Load and connect the network; the file sets the temperature
parser = InputParser()
network = parser.get_network_from_yaml(config_path)
network.configuration.print_summary()
network.print_summary()

# Reactions
reactions = reactions_dataframe(network)
print(reactions.groupby("kind").size())
graph = to_networkx(network)
print(f"Reaction graph: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges")

# Fluxes and Jacobian at the initial concentrations
concentrations = network.fill_concentrations_array()
network.update_concentrations_from_array(concentrations)
fluxes = np.zeros(network.get_dof())
network.compute_all_fluxes(fluxes)
jacobian = network.jacobian_matrix()
print(f"Jacobian: {jacobian.shape}, {jacobian.nnz} non-zeros")
print(f"Total helium: {network.get_total_atom_concentration():.3e} nm^-3")

print("Fluxes (nm^-3 s^-1):")
for cluster in network:
    print(f"  {cluster.name}: {fluxes[cluster.id - 1]:.4e}")

plot_diagonal_fill(network)
plt.show()
