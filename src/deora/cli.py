from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Optional

import click

from deora.config import PipelineConfig
from deora.de_analysis import DifferentialExpressionAnalyzer
from deora.pipeline import run_pipeline
from deora.report_generator import ReportGenerator, load_results


def build_config(
    config_path: Optional[Path],
    dataset: Optional[str],
    counts: Optional[Path],
    metadata: Optional[Path],
    reference: Optional[str],
    output_dir: Optional[Path],
    mapping_backend: Optional[str],
    offline: bool,
    no_enrichment: bool,
    no_interactive: bool,
) -> PipelineConfig:
    """Apply command-line overrides on top of a (possibly file-based) config."""
    config = PipelineConfig.load(config_path) if config_path else PipelineConfig()

    if dataset:
        config = dataclasses.replace(config, dataset=dataset)
    if counts or metadata:
        config = dataclasses.replace(config, counts_path=counts, metadata_path=metadata)
    if reference:
        config.de = dataclasses.replace(config.de, reference=reference, levels=None)
    if output_dir:
        config.plots = dataclasses.replace(config.plots, output_dir=output_dir)
    if offline:
        mapping_backend = "file"
        no_enrichment = True
    if mapping_backend:
        config.id_mapping = dataclasses.replace(config.id_mapping, backend=mapping_backend)
    if no_enrichment:
        config.enrichment = dataclasses.replace(config.enrichment, enabled=False)
    if no_interactive:
        config.plots = dataclasses.replace(config.plots, interactive=False)
    return config


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """Differential expression and over-representation walkthrough."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("run")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON config file; command-line options override it.",
)
@click.option(
    "--dataset",
    type=str,
    help="Bundled dataset name ('demo' or 'synthetic').",
)
@click.option(
    "--counts",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Count matrix (genes x samples, CSV or TSV).",
)
@click.option(
    "--metadata",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Sample metadata (CSV or TSV, first column = sample ID).",
)
@click.option(
    "--reference",
    type=str,
    help="Reference level of the condition factor.",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for tables, report and figures.",
)
@click.option(
    "--mapping-backend",
    type=click.Choice(["gprofiler", "file"]),
    help="Identifier mapping backend.",
)
@click.option(
    "--offline",
    is_flag=True,
    help="No network access: static gene map and no enrichment.",
)
@click.option("--no-enrichment", is_flag=True, help="Skip over-representation analysis.")
@click.option("--no-interactive", is_flag=True, help="Skip HTML figures.")
@click.option(
    "--top-n",
    type=click.IntRange(0, 100),
    default=10,
    show_default=True,
    help="Top genes per direction in the console summary.",
)
def run_command(
    config_path: Optional[Path],
    dataset: Optional[str],
    counts: Optional[Path],
    metadata: Optional[Path],
    reference: Optional[str],
    output_dir: Optional[Path],
    mapping_backend: Optional[str],
    offline: bool,
    no_enrichment: bool,
    no_interactive: bool,
    top_n: int,
) -> None:
    """Run the full walkthrough and write its outputs."""
    try:
        config = build_config(
            config_path,
            dataset,
            counts,
            metadata,
            reference,
            output_dir,
            mapping_backend,
            offline,
            no_enrichment,
            no_interactive,
        )
        result = run_pipeline(config)
    except (FileNotFoundError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc

    ReportGenerator().print_summary(
        result.summary,
        result.cleaned,
        top_n=top_n,
        lfc_threshold=config.significance.lfc_threshold,
    )
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    click.echo(f"Wrote {len(result.outputs)} files to {config.plots.output_dir}")


@cli.command("summary")
@click.argument("results", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--alpha", type=float, default=0.05, show_default=True)
@click.option("--lfc-threshold", type=float, default=1.0, show_default=True)
@click.option("--top-n", type=click.IntRange(0, 100), default=10, show_default=True)
def summary_command(results: Path, alpha: float, lfc_threshold: float, top_n: int) -> None:
    """Print a summary of a previously written result table."""
    table = load_results(results)
    summary = DifferentialExpressionAnalyzer().summarize(table, alpha=alpha)
    ReportGenerator().print_summary(summary, table, top_n=top_n, lfc_threshold=lfc_threshold)


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
