import numpy as np
from dataclasses import dataclass, field
from typing import Optional, Dict, Tuple
from tnessentials.extras.helper_functions import colourful_errors

""" Gene lookup by genomic coordinate. Genes are kept per replicon as arrays
    sorted by start position, so a coordinate is resolved with a binary search
    followed by a scan over the few genes that could still reach it.
"""

@dataclass(frozen=True)
class GeneFeature:
    """
    One annotated gene.

    Attributes:
        locus_tag (str): Unique gene identifier within the replicon.
        replicon (str): Chromosome or plasmid the gene sits on.
        start (int): First coordinate of the gene body.
        end (int): Last coordinate of the gene body (closed interval).
        strand (str): "+" or "-".
        description (str): Free-text annotation.
    """

    locus_tag: str
    replicon: str
    start: int
    end: int
    strand: str = "+"
    description: str = ""

    @property
    def length(self):
        return self.end - self.start

    def contains(self, position):
        return self.start <= position <= self.end


@dataclass(frozen=True)
class RepliconIntervals:
    ''' Sorted gene arrays of one replicon. `rank` orders overlapping
    candidates: the smallest gene wins, then the earliest start, then the
    lexically first locus tag. '''

    starts: np.ndarray
    ends: np.ndarray
    rank: np.ndarray
    features: Tuple[GeneFeature, ...]
    max_length: int
    has_overlaps: bool


@dataclass(frozen=True)
class IntervalIndex:
    """
    Read-only gene index keyed by replicon.

    Built once with `IntervalIndex.build` and shared by every later stage.
    Overlapping genes are resolved by a fixed tie-break (see `RepliconIntervals`),
    never by failing.
    """

    replicons: Dict[str, RepliconIntervals] = field(default_factory=dict)
    overlapping_pairs: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def build(cls, features):
        by_replicon = {}
        for feature in features:
            by_replicon.setdefault(feature.replicon, []).append(feature)

        replicons, overlapping_pairs = {}, []
        for replicon, genes in by_replicon.items():
            genes = sorted(genes, key=lambda g: (g.start, g.end, g.locus_tag))
            starts = np.array([g.start for g in genes], dtype=np.int64)
            ends = np.array([g.end for g in genes], dtype=np.int64)

            tie_break = sorted(range(len(genes)),
                               key=lambda i: (genes[i].length, genes[i].start, genes[i].locus_tag))
            rank = np.empty(len(genes), dtype=np.int64)
            rank[tie_break] = np.arange(len(genes))

            pairs = cls._overlaps(genes)
            overlapping_pairs.extend(pairs)

            # a shared boundary coordinate already needs the tie-break
            touching = bool(np.any(starts[1:] <= np.maximum.accumulate(ends)[:-1])) if len(genes) > 1 else False

            replicons[replicon] = RepliconIntervals(starts=starts,
                                                    ends=ends,
                                                    rank=rank,
                                                    features=tuple(genes),
                                                    max_length=int(np.max(ends - starts)),
                                                    has_overlaps=touching)

        if overlapping_pairs:
            shown = ", ".join(f"{a}/{b}" for a, b in overlapping_pairs[:5])
            colourful_errors("WARNING",
                f"{len(overlapping_pairs)} overlapping gene pairs found ({shown}). Shared coordinates are assigned to the smallest gene.")

        return cls(replicons=replicons, overlapping_pairs=tuple(overlapping_pairs))

    @staticmethod
    def _overlaps(genes):
        pairs = []
        for i, gene in enumerate(genes):
            for other in genes[i+1:]:
                if other.start > gene.end:
                    break
                pairs.append((gene.locus_tag, other.locus_tag))
        return pairs

    def __len__(self):
        return sum(len(r.features) for r in self.replicons.values())

    def genes(self, replicon=None):
        ''' Genes sorted by start, for one replicon or for all of them. '''
        if replicon is not None:
            if replicon not in self.replicons:
                return []
            return list(self.replicons[replicon].features)
        return [g for r in self.replicons.values() for g in r.features]

    def locate(self, replicon, position) -> Optional[GeneFeature]:
        ''' The gene whose closed interval [start, end] holds `position`, or
        None for an intergenic coordinate. '''
        intervals = self.replicons.get(replicon)
        if intervals is None:
            return None
        hit = self._locate_one(intervals, int(position))
        if hit < 0:
            return None
        return intervals.features[hit]

    def _locate_one(self, intervals, position):
        upper = np.searchsorted(intervals.starts, position, side="right")
        lower = np.searchsorted(intervals.starts, position - intervals.max_length, side="left")
        best, best_rank = -1, None
        for i in range(lower, upper):
            if intervals.ends[i] >= position:
                if (best_rank is None) or (intervals.rank[i] < best_rank):
                    best, best_rank = i, intervals.rank[i]
        return best

    def locate_many(self, replicon, positions) -> np.ndarray:
        """
        Vectorised `locate` for one replicon.

        Parameters
        ----------
        replicon : str
            Replicon of every position.
        positions : array-like of int
            Genomic coordinates.

        Returns
        -------
        numpy.ndarray
            Index into `self.genes(replicon)` for every position, -1 where the
            position is intergenic.
        """
        positions = np.asarray(positions, dtype=np.int64)
        intervals = self.replicons.get(replicon)
        if intervals is None:
            return np.full(len(positions), -1, dtype=np.int64)

        if not intervals.has_overlaps:
            candidate = np.searchsorted(intervals.starts, positions, side="right") - 1
            safe = np.clip(candidate, 0, None)
            inside = (candidate >= 0) & (intervals.ends[safe] >= positions)
            return np.where(inside, candidate, -1)

        return np.array([self._locate_one(intervals, p) for p in positions], dtype=np.int64)
