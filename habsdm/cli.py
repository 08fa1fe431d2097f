# Command Line Interface for habsdm
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from habsdm.cache import StageCache
from habsdm.config import load_config
from habsdm.errors import HabsdmError
from habsdm.pipeline import run_pipeline
from habsdm.utils.logging_utils import setup_logging

app = typer.Typer(
    name="habsdm",
    help="Habitat suitability modelling from GBIF occurrences and WorldClim layers",
    add_completion=False,
)

logger = logging.getLogger(__name__)


@app.command()
def run(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            help="Path to the pipeline YAML config. Defaults to config/default.yaml in the project root.",
            exists=True, readable=True, resolve_path=True
        )
    ] = None,
    force: Annotated[bool, typer.Option("--force", help="Recompute every stage, ignoring cached artifacts.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False
) -> None:
    """
    Fetch occurrences and environmental layers, fit the habitat model and
    evaluate it on a held-out split.
    """
    setup_logging(verbose=verbose)
    try:
        config = load_config(config_path, force=force or None)
        result = run_pipeline(config)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=2)
    except HabsdmError as e:
        logger.error(f"Pipeline failed: {e}")
        raise typer.Exit(code=1)

    ev = result.evaluation
    typer.echo(
        f"AUC={ev.auc:.3f} threshold={ev.threshold:.4f} "
        f"TPR={ev.tpr:.3f} FNR={ev.fnr:.3f} FPR={ev.fpr:.3f} TNR={ev.tnr:.3f}"
    )


@app.command("clear-cache")
def clear_cache(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", help="Path to the pipeline YAML config.", exists=True, readable=True, resolve_path=True)
    ] = None,
    stage: Annotated[Optional[str], typer.Option(help="Only forget this stage.")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False
) -> None:
    """Forget cached stage results so the next run recomputes them."""
    setup_logging(verbose=verbose)
    config = load_config(config_path)
    StageCache(config.data_dir).invalidate(stage)
    typer.echo(f"Cleared cache for {stage or 'all stages'} in {config.data_dir}")


if __name__ == "__main__":
    app()
