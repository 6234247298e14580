#!/usr/bin/env python3
"""
Cohort Model Benchmark Runner

This script samples the probabilistic model inputs once and benchmarks the
configured implementation variants of the Markov cohort model against them,
using Hydra configuration management.
"""

import os
import sys
import logging
from pathlib import Path
from typing import Dict

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import hydra
from omegaconf import DictConfig, OmegaConf
from config import check_schemas
from utils.validation import validate_config
from markov_bench import (
    BenchmarkReport,
    benchmark_variants,
    build_transition_matrix,
    cohort_trace,
    make_variant,
    parse_strategies,
    sample_parameters,
)


def setup_logging(cfg: DictConfig) -> None:
    """Configure logging for the benchmark."""
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level.upper()),
        format=cfg.logging.log_format,
        handlers=[
            logging.FileHandler(cfg.logging.log_file),
            logging.StreamHandler()
        ],
        force=True
    )


def create_output_directory(cfg: DictConfig) -> Path:
    """Create output directory for benchmark results."""
    output_dir = Path(cfg.output.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def sample_inputs(cfg: DictConfig) -> pd.DataFrame:
    """Draw the parameter table shared by all variants."""
    logging.info(f"Sampling {cfg.model.n_sim} parameter sets "
                 f"(seed {cfg.random_seed})...")
    return sample_parameters(
        cfg.model.n_sim,
        seed=cfg.random_seed,
        distributions=cfg.sampling.parameters
    )


def run_benchmark(params: pd.DataFrame, cfg: DictConfig) -> BenchmarkReport:
    """Benchmark every configured variant on the same inputs."""
    options = {
        "discount_rate_costs": cfg.model.discount_rate_costs,
        "discount_rate_qalys": cfg.model.discount_rate_qalys,
        "backend": cfg.benchmark.backend,
        "max_workers": cfg.benchmark.max_workers,
    }
    variants = {name: make_variant(name, **options)
                for name in cfg.benchmark.variants}
    logging.info(f"Benchmarking {len(variants)} variants, "
                 f"{cfg.benchmark.iterations} iterations each...")

    return benchmark_variants(
        variants,
        params,
        strategies=list(cfg.model.strategies),
        n_t=cfg.model.n_t,
        iterations=cfg.benchmark.iterations,
        readability=OmegaConf.to_container(cfg.benchmark.readability),
        weights=OmegaConf.to_container(cfg.benchmark.weights),
        measure_memory=cfg.benchmark.measure_memory
    )


def run_validation_checks(params: pd.DataFrame, report: BenchmarkReport,
                          cfg: DictConfig) -> Dict[str, bool]:
    """Sanity checks on the reference results."""
    logging.info("Running validation checks...")
    checks = {}

    # Mass conservation and absorbing Dead state on the first replicate
    row = params.iloc[0]
    conserved = True
    monotone = True
    for strategy in parse_strategies(cfg.model.strategies):
        matrix = build_transition_matrix(
            row["p_healthy_sick"], row["p_healthy_dead"],
            row["p_sick_healthy"], row["p_sick_dead"],
            row["rr_healthy_sick"], strategy
        )
        trace = cohort_trace(matrix, cfg.model.n_t)
        conserved &= bool(np.allclose(trace.sum(axis=1), 1.0, atol=1e-9))
        monotone &= bool(np.all(np.diff(trace[:, -1]) >= -1e-12))
    checks['mass_conservation'] = conserved
    checks['dead_monotone'] = monotone
    checks['finite_results'] = bool(np.isfinite(report.reference.to_numpy()).all())

    for name, passed in checks.items():
        if passed:
            logging.info(f"✓ {name} check passed")
        else:
            logging.warning(f"✗ {name} check failed")
    return checks


def create_visualizations(report: BenchmarkReport, cfg: DictConfig,
                          output_dir: Path) -> None:
    """Box plot of per-iteration timings by variant."""
    if not cfg.output.save_plots:
        return

    logging.info("Creating visualizations...")
    sns.set_palette("husl")

    order = report.summary.sort_values("median")["variant"]
    plt.figure(figsize=(10, 6))
    sns.boxplot(data=report.timings, x="seconds", y="variant", order=order)
    plt.xscale("log")
    plt.xlabel("Seconds per run (log scale)")
    plt.ylabel("Variant")
    plt.title("Cohort model run time by variant")
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(output_dir / 'timings.png', dpi=150, bbox_inches='tight')
    plt.close()


def save_results(params: pd.DataFrame, report: BenchmarkReport,
                 cfg: DictConfig, output_dir: Path) -> None:
    """Save benchmark tables and the resolved configuration."""
    logging.info("Saving benchmark results...")
    report.summary.to_csv(output_dir / "summary.csv", index=False)
    report.timings.to_csv(output_dir / "timings.csv", index=False)
    report.reference.to_csv(output_dir / "results_reference.csv")
    params.to_csv(output_dir / "parameters.csv")
    OmegaConf.save(cfg, output_dir / "config.yaml", resolve=True)


@hydra.main(version_base=None, config_path="../configs", config_name="config")
def main(cfg: DictConfig) -> None:
    """Main benchmark runner."""
    setup_logging(cfg)
    check_schemas(cfg)
    validate_config(cfg)
    logging.info("Starting cohort model benchmark")
    logging.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")

    output_dir = create_output_directory(cfg)
    logging.info(f"Output directory: {output_dir}")

    params = sample_inputs(cfg)
    report = run_benchmark(params, cfg)
    run_validation_checks(params, report, cfg)
    create_visualizations(report, cfg, output_dir)
    save_results(params, report, cfg, output_dir)

    logging.info("Benchmark completed successfully!")
    ranked = report.summary.sort_values("overall_score")
    for _, row in ranked.iterrows():
        logging.info(f"  - {row['variant']}: median {row['median']:.4f}s, "
                     f"memory {row['mem_alloc'] / 2**20:.2f} MiB, "
                     f"readability {row['qual_mean']:.1f}, "
                     f"score {row['overall_score']:.3f}")
    logging.info(f"Results saved to: {output_dir}")


if __name__ == "__main__":
    main()
