"""
Cluster compositions and species types.
"""

from dataclasses import dataclass
from enum import Enum
from numbers import Integral
from typing import Optional, Tuple, TypeAlias


class ClusterType(Enum):
    """Species families tracked by the reaction network."""

    HE = "He"
    V = "V"
    I = "I"
    HEV = "HeV"
    HEI = "HeI"
    SUPER = "Super"

    @classmethod
    def parse(cls, value: "ClusterType | str") -> Optional["ClusterType"]:
        """Get a cluster type from its name, or None if the name is unknown."""
        if isinstance(value, ClusterType):
            return value
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_single_species(self) -> bool:
        return self in SINGLE_SPECIES_TYPES

    @property
    def is_mixed(self) -> bool:
        return not self.is_single_species


SINGLE_SPECIES_TYPES = (ClusterType.HE, ClusterType.V, ClusterType.I)

# Group distances of a composition inside a super cluster: (helium, vacancy)
Distance: TypeAlias = Tuple[float, float]
NO_DISTANCE: Distance = (0.0, 0.0)


@dataclass(frozen=True, order=True)
class Composition:
    """Number of helium atoms, vacancies and interstitials in a cluster."""

    he: int = 0
    v: int = 0
    i: int = 0

    def __post_init__(self):
        for count in (self.he, self.v, self.i):
            if isinstance(count, bool) or not isinstance(count, Integral):
                raise TypeError(f"Composition counts must be integers, got {self.as_tuple()}")
        if self.he < 0 or self.v < 0 or self.i < 0:
            raise ValueError(f"Composition counts must be non-negative, got {self.as_tuple()}")

    @classmethod
    def of(cls, cluster_type: "ClusterType | str", size: int) -> "Composition":
        """Create the composition of a single-species cluster."""
        cluster_type = ClusterType.parse(cluster_type)
        if cluster_type == ClusterType.HE:
            return cls(he=size)
        elif cluster_type == ClusterType.V:
            return cls(v=size)
        elif cluster_type == ClusterType.I:
            return cls(i=size)
        raise ValueError(f"{cluster_type} is not a single-species type")

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.he, self.v, self.i)

    @property
    def size(self) -> int:
        """Total number of atoms and defects."""
        return self.he + self.v + self.i

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    @property
    def type(self) -> ClusterType:
        """Species type of a valid, non-empty composition."""
        if self.v > 0 and self.i > 0:
            raise ValueError(f"Vacancies and interstitials cannot coexist in a cluster: {self}")
        if self.he > 0:
            if self.v > 0:
                return ClusterType.HEV
            if self.i > 0:
                return ClusterType.HEI
            return ClusterType.HE
        if self.v > 0:
            return ClusterType.V
        if self.i > 0:
            return ClusterType.I
        raise ValueError("Empty composition has no species type")

    def add(self, other: "Composition") -> "Composition":
        return Composition(self.he + other.he, self.v + other.v, self.i + other.i)

    def remove(self, other: "Composition") -> Optional["Composition"]:
        """Component-wise difference, or None if any count would go negative or nothing is left."""
        he, v, i = self.he - other.he, self.v - other.v, self.i - other.i
        if he < 0 or v < 0 or i < 0 or he + v + i == 0:
            return None
        return Composition(he, v, i)

    @property
    def label(self) -> str:
        """Label such as He_3, V_2 or He_2V_1."""
        parts = []
        for symbol, count in (("He", self.he), ("V", self.v), ("I", self.i)):
            if count > 0:
                parts.append(f"{symbol}_{count}")
        return "".join(parts) if parts else "0"

    def __str__(self) -> str:
        return self.label


HE_ATOM = Composition(he=1)
VACANCY = Composition(v=1)
INTERSTITIAL = Composition(i=1)


def combine_compositions(first: Composition, second: Composition) -> Composition:
    """Composition formed by two reacting clusters.

    Helium adds up while vacancies and interstitials annihilate each other:

    * I_a + V_b --> V_(b-a) if b > a, I_(a-b) if a > b, nothing if a = b
    * (He_a)(V_b) + I_c --> (He_a)[V_(b-c)] and so on for mixed clusters

    An empty composition means complete annihilation.
    """
    net_vacancies = (first.v + second.v) - (first.i + second.i)
    he = first.he + second.he
    if net_vacancies >= 0:
        return Composition(he=he, v=net_vacancies)
    return Composition(he=he, i=-net_vacancies)
