import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.nonparametric.smoothers_lowess import lowess
from dataclasses import dataclass
from tnessentials.extras.helper_functions import colourful_errors
from tnessentials.extras.exceptions import (ThresholdFitError,NoBimodalStructureError,
                                            SubpopulationTooSmallError,DegenerateAmbiguousZoneError)

""" Essentiality thresholds from the genome-wide insertion index distribution.

    Essential genes form a cluster of near-zero indices, modelled by an
    exponential; the rest form a hump around 1, modelled by a gamma. The two
    populations are split at the density minimum between the modes, each is
    fitted, and the indices where neither weighted density beats the other by
    the likelihood-ratio factor become the ambiguous band.
"""


@dataclass(frozen=True)
class EssentialityThresholds:
    """
    Fitted thresholds and the parameters behind them.

    Attributes:
        lower_t (float): Indices at or below are essential.
        upper_t (float): Indices above are non-essential.
        separation (float): Index splitting the two populations for the fit.
        second_mode (float): Location of the non-essential density mode.
        f1 (float): Fraction of genes in the low-index population.
        f2 (float): Fraction of genes in the high-index population.
        exponential_rate (float): Rate of the low-index exponential.
        gamma_shape (float): Shape of the high-index gamma.
        gamma_rate (float): Rate of the high-index gamma.
        n_low (int): Genes used in the exponential fit.
        n_high (int): Genes used in the gamma fit.
        strategy (str): Name of the fitting strategy.
    """

    lower_t: float
    upper_t: float
    separation: float
    second_mode: float
    f1: float
    f2: float
    exponential_rate: float
    gamma_shape: float
    gamma_rate: float
    n_low: int = 0
    n_high: int = 0
    strategy: str = "mle"

    def __post_init__(self):
        if not self.lower_t < self.upper_t:
            raise DegenerateAmbiguousZoneError(
                f"lower threshold {self.lower_t} is not below upper threshold {self.upper_t}")

    def low_density(self, x):
        ''' f1 * exponential pdf '''
        return self.f1 * stats.expon.pdf(x, scale=1 / self.exponential_rate)

    def high_density(self, x):
        ''' f2 * gamma pdf '''
        return self.f2 * stats.gamma.pdf(x, self.gamma_shape, scale=1 / self.gamma_rate)

    def as_rows(self):
        return [["parameter", "value"],
                ["lower_t", self.lower_t],
                ["upper_t", self.upper_t],
                ["separation", self.separation],
                ["second_mode", self.second_mode],
                ["f1", self.f1],
                ["f2", self.f2],
                ["exponential_rate", self.exponential_rate],
                ["gamma_shape", self.gamma_shape],
                ["gamma_rate", self.gamma_rate],
                ["n_low", self.n_low],
                ["n_high", self.n_high],
                ["strategy", self.strategy]]


class FitStrategy:
    ''' Numerical pieces of the threshold fit. Subclasses swap the estimators
    without touching the classification logic. '''

    name = "base"

    def __init__(self, lowess_frac=0.2, fine_bins=100, edge_fraction=0.05):
        self.lowess_frac = lowess_frac
        self.fine_bins = fine_bins
        self.edge_fraction = edge_fraction

    def fit_exponential(self, values):
        raise NotImplementedError

    def fit_gamma(self, values):
        raise NotImplementedError

    def find_local_minimum(self, values, upper):
        """
        Lowest point of the smoothed index density on [0, upper).

        A fine histogram of the indices below `upper` is smoothed by local
        regression (lowess without robustness iterations, so the spikes of
        genes with one or two insertions are kept) and the centre of the lowest
        bin is returned.

        Raises
        ------
        NoBimodalStructureError
            When the minimum sits on the edge of the search range, meaning the
            density only falls or only rises between zero and the second mode.
        """
        counts, edges = np.histogram(values[values < upper], bins=self.fine_bins, range=(0, upper))
        mids = (edges[:-1] + edges[1:]) / 2
        smoothed = lowess(counts, mids, frac=self.lowess_frac, it=0, return_sorted=False)
        lowest = int(np.argmin(smoothed))

        edge = max(1, int(self.fine_bins * self.edge_fraction))
        if (lowest < edge) or (lowest >= self.fine_bins - edge):
            raise NoBimodalStructureError(
                f"no bimodal structure detected: density minimum at the edge of [0, {upper:.3f})")
        return float(mids[lowest])


class MaximumLikelihoodFit(FitStrategy):
    ''' Maximum likelihood fits with the location fixed at zero. '''

    name = "mle"

    def fit_exponential(self, values):
        _, scale = stats.expon.fit(values, floc=0)
        if not scale > 0:
            raise ThresholdFitError("exponential fit failed: the low-index population has no spread")
        return 1 / scale

    def fit_gamma(self, values):
        shape, _, scale = stats.gamma.fit(values, floc=0)
        if not ((shape > 0) and (scale > 0) and np.isfinite(shape) and np.isfinite(scale)):
            raise ThresholdFitError("gamma fit failed to converge")
        return shape, 1 / scale


class MomentsFit(FitStrategy):
    ''' Method-of-moments estimates. '''

    name = "moments"

    def fit_exponential(self, values):
        mean = np.mean(values)
        if not mean > 0:
            raise ThresholdFitError("exponential fit failed: the low-index population has no spread")
        return 1 / mean

    def fit_gamma(self, values):
        mean, variance = np.mean(values), np.var(values)
        if not variance > 0:
            raise ThresholdFitError("gamma fit failed: the high-index population has no spread")
        return mean ** 2 / variance, mean / variance


STRATEGIES = {MaximumLikelihoodFit.name: MaximumLikelihoodFit,
              MomentsFit.name: MomentsFit}


def strategy_picker(name, **kwargs):
    if name not in STRATEGIES:
        raise ThresholdFitError(f"unknown fitting strategy '{name}', pick one of {sorted(STRATEGIES)}")
    return STRATEGIES[name](**kwargs)


class ThresholdFitter:
    """
    Two-component mixture fit over insertion indices.

    Parameters
    ----------
    strategy : FitStrategy, optional
        Numerical estimators (maximum likelihood by default).
    fit_cutoff : float
        Indices at or above this value are left out of the fit.
    likelihood_ratio : float
        Factor by which one weighted density must beat the other outside the
        ambiguous band.
    min_population : int
        Smallest number of genes each population needs to be fitted.
    grid_points : int
        Resolution of the index grid the densities are compared on.
    refine_iterations : int
        Times the split may be moved to the crossing of the fitted densities
        and refitted. 0 keeps the provisional split.
    coarse_bins : int
        Histogram bins over [0, fit_cutoff) used to find the second mode.
    mode_floor : float
        Lowest index the non-essential mode may sit at.
    """

    def __init__(self, strategy=None, fit_cutoff=3, likelihood_ratio=5, min_population=10,
                 grid_points=10000, refine_iterations=20, coarse_bins=150, mode_floor=0.2):
        self.strategy = strategy if strategy is not None else MaximumLikelihoodFit()
        self.fit_cutoff = float(fit_cutoff)
        self.likelihood_ratio = float(likelihood_ratio)
        self.min_population = int(min_population)
        self.grid = np.linspace(0, self.fit_cutoff, int(grid_points))
        self.refine_iterations = int(refine_iterations)
        self.coarse_bins = int(coarse_bins)
        self.mode_floor = float(mode_floor)

    def fittable(self, indices):
        values = np.asarray(indices, dtype=float)
        values = values[np.isfinite(values)]
        return values[(values >= 0) & (values < self.fit_cutoff)]

    def second_mode(self, values):
        ''' Centre of the highest smoothed histogram bin at or above
        `mode_floor`. The density must still be rising somewhere past the floor,
        otherwise the near-zero cluster is all there is. '''

        counts, edges = np.histogram(values, bins=self.coarse_bins, range=(0, self.fit_cutoff))
        mids = (edges[:-1] + edges[1:]) / 2
        smoothed = pd.Series(counts, dtype=float).rolling(window=5, center=True, min_periods=1).mean().to_numpy()

        eligible = np.flatnonzero(mids >= self.mode_floor)
        if len(eligible) < 2:
            raise NoBimodalStructureError(
                f"no bimodal structure detected: mode floor {self.mode_floor} leaves no room below the fit cutoff")

        mode = eligible[0] + int(np.argmax(smoothed[eligible]))
        if (mode == eligible[0]) or not (smoothed[mode] > smoothed[:mode].min()):
            raise NoBimodalStructureError("no bimodal structure detected: no second density mode")
        return float(mids[mode])

    def _split(self, values, separation):
        low = values[(values > 0) & (values < separation)]
        high = values[values >= separation]
        for population, name in ((low, "low-index"), (high, "high-index")):
            if len(population) < self.min_population:
                raise SubpopulationTooSmallError(
                    f"the {name} population has {len(population)} genes, at least {self.min_population} are needed")

        rate = self.strategy.fit_exponential(low)
        shape, gamma_rate = self.strategy.fit_gamma(high)
        f1 = np.sum(values < separation) / len(values)
        return {"low": len(low), "high": len(high), "rate": rate,
                "shape": shape, "gamma_rate": gamma_rate, "f1": f1, "f2": 1 - f1}

    def _densities(self, fit):
        p1 = fit["f1"] * stats.expon.pdf(self.grid, scale=1 / fit["rate"])
        p2 = fit["f2"] * stats.gamma.pdf(self.grid, fit["shape"], scale=1 / fit["gamma_rate"])
        return p1, p2

    def _crossing(self, fit):
        ''' First index where the weighted gamma overtakes the weighted
        exponential, or None. '''
        p1, p2 = self._densities(fit)
        above = p1 > p2
        turns = np.flatnonzero(above[:-1] & ~above[1:])
        if len(turns) == 0:
            return None
        return float(self.grid[turns[0] + 1])

    def ambiguous_band(self, fit):
        """
        Lowest and highest index where neither weighted density exceeds the
        other by `likelihood_ratio`.

        Raises
        ------
        DegenerateAmbiguousZoneError
            When no grid point, or a disjoint set of grid points, satisfies
            the ratio bound. This happens when heavy tails make the fitted
            curves cross more than twice.
        """
        p1, p2 = self._densities(fit)
        zone = np.flatnonzero((p1 < self.likelihood_ratio * p2) & (p2 < self.likelihood_ratio * p1))
        if len(zone) < 2:
            raise DegenerateAmbiguousZoneError("the fitted densities leave no ambiguous band")
        if np.any(np.diff(zone) != 1):
            raise DegenerateAmbiguousZoneError("the ambiguous band is not contiguous; the fitted densities cross more than twice")
        return float(self.grid[zone[0]]), float(self.grid[zone[-1]])

    def fit(self, indices) -> EssentialityThresholds:
        """
        Fit the mixture and derive the essentiality thresholds.

        Parameters
        ----------
        indices : array-like of float
            Insertion indices of every gene eligible for fitting. NaN and
            values at or above `fit_cutoff` are ignored.

        Returns
        -------
        EssentialityThresholds

        Raises
        ------
        ThresholdFitError
            Or one of its subclasses, when the distribution does not support
            a two-population fit.
        """
        values = self.fittable(indices)
        if len(values) < 2 * self.min_population:
            raise SubpopulationTooSmallError(
                f"only {len(values)} genes are available for threshold fitting")

        mode = self.second_mode(values)
        separation = self.strategy.find_local_minimum(values, mode)
        colourful_errors("INFO",
            f"Second index mode at {mode:.3f}, provisional population split at {separation:.3f}.")

        step = self.grid[1] - self.grid[0]
        for iteration in range(self.refine_iterations + 1):
            fit = self._split(values, separation)
            if iteration == self.refine_iterations:
                break
            moved = self._crossing(fit)
            if (moved is None) or (moved >= mode) or (abs(moved - separation) <= step):
                break
            separation = moved

        lower_t, upper_t = self.ambiguous_band(fit)

        thresholds = EssentialityThresholds(lower_t=lower_t,
                                            upper_t=upper_t,
                                            separation=separation,
                                            second_mode=mode,
                                            f1=float(fit["f1"]),
                                            f2=float(fit["f2"]),
                                            exponential_rate=float(fit["rate"]),
                                            gamma_shape=float(fit["shape"]),
                                            gamma_rate=float(fit["gamma_rate"]),
                                            n_low=int(fit["low"]),
                                            n_high=int(fit["high"]),
                                            strategy=self.strategy.name)

        colourful_errors("INFO",
            f"Essentiality thresholds: essential <= {lower_t:.4f} < ambiguous <= {upper_t:.4f} < non-essential.")
        return thresholds
