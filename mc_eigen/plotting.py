"""
Convergence Figures
===================

Two-panel figure of an eigenvalue run:
  1. k per generation with the running active-generation mean and its
     1-sigma band
  2. Shannon entropy of the fission source per generation

The inactive/active boundary is marked on both panels.
"""

import os

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for file output
import matplotlib.pyplot as plt
import numpy as np


def plot_convergence(result, filepath=None, title="k-Eigenvalue Convergence"):
    """Plot k and entropy histories of *result*.

    Parameters
    ----------
    result : EigenvalueResult
    filepath : str, optional
        Where to save the figure (PNG/PDF by extension).  None returns
        the open figure instead.

    Returns
    -------
    matplotlib.figure.Figure or str
        The figure, or the saved path.
    """
    k_hist = np.asarray(result.keff_history, dtype=np.float64)
    h_hist = np.asarray(result.entropy_history, dtype=np.float64)
    gens = np.arange(1, len(k_hist) + 1)
    n_inactive = result.n_inactive_run

    fig, (ax_k, ax_h) = plt.subplots(2, 1, figsize=(8, 7), sharex=True)

    # ---- k per generation ----
    ax_k.plot(gens, k_hist, 'o-', color='#2980b9', markersize=3, linewidth=1.0,
              label='k (generation)')
    active = k_hist[n_inactive:]
    if np.any(np.isfinite(active)):
        running = np.array([
            np.nanmean(active[:i + 1]) for i in range(len(active))
        ])
        ax_k.plot(gens[n_inactive:], running, color='#e74c3c', linewidth=2.0,
                  label='running mean')
        ax_k.axhspan(result.k_eff - result.k_eff_stddev,
                     result.k_eff + result.k_eff_stddev,
                     color='#e74c3c', alpha=0.15,
                     label=f'k_eff = {result.k_eff:.5f} +/- {result.k_eff_stddev:.5f}')
    ax_k.set_ylabel('k')
    ax_k.legend(loc='best', fontsize=9)
    ax_k.grid(True, alpha=0.3)
    ax_k.set_title(title)

    # ---- Shannon entropy ----
    ax_h.plot(gens, h_hist, 's-', color='#27ae60', markersize=3, linewidth=1.0)
    ax_h.set_xlabel('Generation')
    ax_h.set_ylabel('Shannon entropy [nats]')
    ax_h.grid(True, alpha=0.3)

    if 0 < n_inactive < len(gens):
        for ax in (ax_k, ax_h):
            ax.axvline(n_inactive + 0.5, color='k', linestyle='--', alpha=0.4)
        ax_h.text(n_inactive + 0.5, ax_h.get_ylim()[1], ' active',
                  va='top', fontsize=9)

    fig.tight_layout()
    if filepath is None:
        return fig
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    fig.savefig(filepath, dpi=150, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    return filepath
