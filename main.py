"""
Stable point evaluation - convergence study entry point.

Usage:
    uv run python main.py
    uv run python main.py n0=8 levels=4 point.x=0.45 point.y=0.55
    uv run python main.py mlflow.enabled=true
"""

import logging
import os
from pathlib import Path

import hydra
import mlflow
from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from stable_eval import (
    StudyParameters,
    compute_convergence_rate,
    convergence_study,
    plot_convergence,
    to_latex_table,
)
from stable_eval.datastructures import LevelMetrics

load_dotenv()

log = logging.getLogger(__name__)


def get_experiment_name(cfg: DictConfig) -> str:
    """Build full experiment name with optional prefix."""
    name = cfg.experiment_name
    prefix = cfg.mlflow.get("project_prefix", "")
    if prefix and not name.startswith("/"):
        return f"{prefix}/{name}"
    return name


def setup_mlflow(cfg: DictConfig) -> str:
    """Setup MLflow tracking and return experiment name."""
    tracking_uri = cfg.mlflow.get("tracking_uri", "./mlruns")
    os.environ["MLFLOW_TRACKING_URI"] = str(tracking_uri)
    mlflow.set_tracking_uri(tracking_uri)

    experiment_name = get_experiment_name(cfg)
    mlflow.set_experiment(experiment_name)
    return experiment_name


def build_parameters(cfg: DictConfig) -> StudyParameters:
    return StudyParameters(
        n0=int(cfg.n0),
        levels=int(cfg.levels),
        x=float(cfg.point.x),
        y=float(cfg.point.y),
        quad_degree=int(cfg.quad_degree),
        subdivisions=int(cfg.subdivisions),
    )


def log_to_mlflow(cfg: DictConfig, params: StudyParameters, df, figure: Path | None) -> None:
    """Log parameters, per-level errors and artifacts to a single MLflow run."""
    log.info(f"MLflow experiment: {setup_mlflow(cfg)}")
    run_name = f"n{params.n0}_L{params.levels}"

    with mlflow.start_run(run_name=run_name):
        mlflow.log_params(params.to_mlflow())
        mlflow.log_dict(OmegaConf.to_container(cfg), "config.yaml")

        for row in df.to_dict(orient="records"):
            metrics = LevelMetrics(**{k: row[k] for k in LevelMetrics.__dataclass_fields__})
            mlflow.log_metrics(metrics.to_mlflow(), step=metrics.level)

        mlflow.log_text(to_latex_table(df), "convergence_table.tex")
        if figure is not None:
            mlflow.log_artifact(str(figure))


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> float:
    """Main entry point.

    Returns
    -------
    float
        Stable evaluation error on the finest mesh.
    """
    params = build_parameters(cfg)
    log.info("Study parameters:\n" + params.to_dataframe().to_string(index=False))

    df = convergence_study(params)
    log.info("\n" + df.to_string(index=False, float_format=lambda v: f"{v:.3e}"))
    log.info("\n" + to_latex_table(df))
    if len(df) > 1:
        rate = compute_convergence_rate(df["h"], df["stable_error"], n_last=3)
        log.info(f"Fitted rate of the stable evaluation: {rate:.2f}")

    output_dir = Path(hydra.core.hydra_config.HydraConfig.get().runtime.output_dir)
    figure = None
    if cfg.get("plot", True):
        figure = plot_convergence(df, output_dir / "convergence.pdf")

    if cfg.mlflow.get("enabled", False):
        log_to_mlflow(cfg, params, df, figure)

    final_error = float(df["stable_error"].iloc[-1])
    log.info(f"Done: stable error on finest mesh = {final_error:.3e}")
    return final_error


if __name__ == "__main__":
    main()
