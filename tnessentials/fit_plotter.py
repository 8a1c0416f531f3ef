import os
import numpy as np
import seaborn as sns
import matplotlib
import matplotlib.pyplot as plt
from tnessentials.extras.helper_functions import adjust_spines
matplotlib.use('Agg')

""" Diagnostic plots for the threshold fit and the final essentiality calls. """


def fit_plotter(indices, thresholds, output_folder, naming):
    ''' Histogram of the fitted insertion indices with both weighted fitted
    densities and the essentiality thresholds drawn on top. '''

    values = np.asarray(indices, dtype=float)
    values = values[np.isfinite(values) & (values >= 0)]
    grid = np.linspace(0, max(values.max() if len(values) else 0, thresholds.upper_t * 2), 2000)

    fig, ax1 = plt.subplots()

    sns.histplot(x=values, stat="density", bins=100, color="orange", ax=ax1)
    ax1.plot(grid, thresholds.low_density(grid), c="tab:red", label=f"exponential (rate {thresholds.exponential_rate:.2f})")
    ax1.plot(grid, thresholds.high_density(grid), c="tab:blue",
             label=f"gamma (shape {thresholds.gamma_shape:.2f}, rate {thresholds.gamma_rate:.2f})")
    ax1.axvline(thresholds.lower_t, ls="--", c=".3", label=f"lower threshold {thresholds.lower_t:.3f}")
    ax1.axvline(thresholds.upper_t, ls=":", c=".3", label=f"upper threshold {thresholds.upper_t:.3f}")

    top = thresholds.high_density(grid).max() * 3
    ax1.set_ylim(0, top if top > 0 else None)
    ax1.set_xlabel("Insertion index")
    ax1.set_ylabel("Density")
    ax1.set_title(f"Insertion index distribution and essentiality thresholds\n{naming}", size=9, pad=13)
    ax1.legend(loc="upper right", prop={'size': 6.5})

    fig.tight_layout()
    adjust_spines(ax1, ['left', 'bottom'], (0, ax1.get_xlim()[1]), (0, ax1.get_ylim()[1]))
    path = os.path.join(output_folder, f"{naming}_index_fit.png")
    plt.savefig(path, dpi=300)
    plt.close()
    return path


def label_plotter(genes, output_folder, naming):
    ''' Genes per essentiality label, stacked by replicon. '''

    counts = genes.groupby(["essentiality_label", "replicon"]).size().unstack(fill_value=0)
    if counts.empty:
        return None

    ax = counts.plot(kind="bar", stacked=True, figsize=(8, 5))

    for idx, label in enumerate(counts.index):
        total = int(counts.loc[label].sum())
        ax.annotate(f'{total}', xy=(idx, total), ha='center', va='bottom',
                    color='black', fontsize=10, fontweight='bold')

    plt.ylabel("Genes")
    plt.xlabel("Essentiality")
    plt.title("Genes per essentiality category")
    plt.legend(title="Replicon")
    plt.tight_layout()
    adjust_spines(ax, ['left', 'bottom'], (-0.5, ax.get_xlim()[1]), (0, ax.get_ylim()[1]))
    path = os.path.join(output_folder, f"{naming}_label_distribution.png")
    plt.savefig(path, dpi=300)
    plt.close()
    return path
