import datetime
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Tuple


def visualize_delay_timeline(
    delay_samples: Sequence[Tuple[int, float, float]],
    run_tag: str = "",
    out_dir: str = "results",
    num_bins: int = 40,
) -> Optional[str]:
    """Plot the end-to-end delay of every delivered packet and the delay distribution.

    Args:
        delay_samples: list of (packet_id, send_time_s, delay_s) tuples, one per delivered packet
        run_tag: topology/scenario tag used in the title and the file name
        out_dir: output directory for the PNG file
        num_bins: number of histogram bins

    Returns:
        Path to saved file, or None if there was nothing to plot.
    """
    if not delay_samples:
        logging.warning("No delay samples to visualize")
        return None

    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt
    import numpy as np

    send_times = np.array([t for _, t, _ in delay_samples])
    delays_ms = np.array([d for _, _, d in delay_samples]) * 1e3

    mean_ms = float(np.mean(delays_ms))
    jitter_ms = float(np.std(delays_ms))  # population std, same as the run statistics

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8))

    # Top plot: delay per packet over the send time
    ax1.plot(send_times, delays_ms, marker='o', markersize=3, linewidth=0.8, color='navy')
    ax1.axhline(y=mean_ms, color='red', linestyle='--', linewidth=1.5, label=f'Avg: {mean_ms:.3f} ms')
    ax1.fill_between(send_times, mean_ms - jitter_ms, mean_ms + jitter_ms, color='red', alpha=0.1,
                     label=f'Jitter (±1σ): {jitter_ms:.3f} ms')
    ax1.set_xlabel('Send time (s)', fontsize=11)
    ax1.set_ylabel('End-to-end delay (ms)', fontsize=11)
    ax1.set_title(f'Packet Delay Over Time{" (" + run_tag + ")" if run_tag else ""}',
                  fontsize=14, fontweight='bold')
    ax1.grid(alpha=0.3)
    ax1.legend(loc='upper right')

    # Bottom plot: delay histogram
    bins = min(num_bins, max(1, len(delays_ms)))
    ax2.hist(delays_ms, bins=bins, color=plt.cm.Greens(0.6), edgecolor='darkgreen', linewidth=0.5)
    ax2.axvline(x=mean_ms, color='red', linestyle='--', linewidth=1.5)
    ax2.set_xlabel('End-to-end delay (ms)', fontsize=11)
    ax2.set_ylabel('Packets', fontsize=11)
    ax2.grid(axis='y', alpha=0.3)

    stats_text = (f"{len(delay_samples):,} packets | min {float(np.min(delays_ms)):.3f} ms | "
                  f"max {float(np.max(delays_ms)):.3f} ms")
    fig.text(0.5, 0.02, stats_text, ha='center', fontsize=10, style='italic')

    plt.tight_layout()
    plt.subplots_adjust(bottom=0.1)

    os.makedirs(out_dir, exist_ok=True)
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_tag = "".join(c if c.isalnum() or c in '._-' else '_' for c in run_tag)
    filename = f"delay_timeline_{safe_tag}_{timestamp}.png" if safe_tag else f"delay_timeline_{timestamp}.png"
    filepath = os.path.join(out_dir, filename)
    plt.savefig(filepath, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logging.info(f"Delay timeline graph saved to: {filepath}")
    return filepath


def visualize_experiment_results(results: List[Dict[str, Any]], out_dir: str = "results") -> List[str]:
    """Plot the delay timeline of every run result that has delivered packets."""
    paths: List[str] = []
    for result in results:
        params = result.get('parameters summary', {})
        run_tag = f"{params.get('topology', '')}.{params.get('scenario', '')}".strip('.')
        path = visualize_delay_timeline(result.get('delay samples', []), run_tag, out_dir)
        if path is not None:
            paths.append(path)
    return paths


__all__ = ["visualize_experiment_results", "visualize_delay_timeline"]
