import logging
from pathlib import Path

import matplotlib.pyplot as plt

log = logging.getLogger(__name__)

STYLE_PATH = Path(__file__).resolve().parent / "stable_eval.mplstyle"


def setup_style():
    """Apply shared matplotlib style."""
    if STYLE_PATH.exists():
        plt.style.use(STYLE_PATH)
    plt.rcParams["savefig.bbox"] = "tight"


def save_figure(fig, filename: str | Path) -> Path:
    """
    Save figure to the specified path, creating parent directories.
    """
    filepath = Path(filename)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(filepath, bbox_inches="tight")
    log.info(f"Saved figure: {filepath}")
    return filepath
