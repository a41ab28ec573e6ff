"""CLI for notegrade."""

import json
import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from .config import GraderConfig, load_config
from .execution.orchestrator import GradingOrchestrator
from .notation.align import DEFAULT_TOLERANCE
from .notation.instruments import transposition_semitones
from .notation.parser import parse_notes
from .notation.score import evaluate as evaluate_documents
from .storage.base import ContentFetcher, NotFoundError
from .storage.content import DirectoryContentFetcher, HttpContentFetcher, UrlSigner
from .storage.sql import SqlStore

# Load .env file if present
load_dotenv()

logger = logging.getLogger(__name__)


def build_orchestrator(
    cfg: GraderConfig,
    *,
    storage_dir: str | None = None,
    url_signer: UrlSigner | None = None,
) -> GradingOrchestrator:
    """Wire a SQL store and a content fetcher from configuration.

    Files come from *storage_dir* when given, else over HTTP from
    ``storage_base_url``, else from the working directory.  Over HTTP,
    private buckets need *url_signer*; without one, answers stored there
    are skipped, and a warning says so up front.
    """
    fetcher: ContentFetcher
    if storage_dir:
        fetcher = DirectoryContentFetcher(storage_dir)
    elif cfg.storage_base_url:
        if cfg.private_buckets and url_signer is None:
            logger.warning(
                "No URL signer configured; files in private bucket(s) %s will be "
                "unavailable and their answers skipped",
                ", ".join(cfg.private_buckets),
            )
        fetcher = HttpContentFetcher(
            cfg.storage_base_url,
            url_signer=url_signer,
            private_buckets=cfg.private_buckets,
            timeout=cfg.fetch_timeout,
        )
    else:
        fetcher = DirectoryContentFetcher(".")
    return GradingOrchestrator(SqlStore(cfg.database_url), fetcher, cfg)


@click.group()
@click.version_option(package_name="notegrade")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("-v", "--verbose", count=True, help="-v for INFO, -vv for DEBUG")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: int):
    """Notation evaluation and exam auto-grading."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    ctx.obj = load_config(config_path)


@cli.command("evaluate")
@click.argument("reference", type=click.Path(exists=True, dir_okay=False))
@click.argument("student", type=click.Path(exists=True, dir_okay=False))
@click.option("--semitones", type=int, help="Transpose the reference by this many semitones")
@click.option("--from-instrument", help="Instrument the reference is written for")
@click.option("--to-instrument", help="Instrument the student wrote for")
@click.option("--tolerance", type=float, default=float(DEFAULT_TOLERANCE), show_default=True,
              help="Alignment window in beats")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
def evaluate(
    reference: str,
    student: str,
    semitones: int | None,
    from_instrument: str | None,
    to_instrument: str | None,
    tolerance: float,
    as_json: bool,
):
    """Compare a STUDENT score against a REFERENCE score."""
    if semitones is None and (from_instrument or to_instrument):
        if not (from_instrument and to_instrument):
            raise click.UsageError("--from-instrument and --to-instrument go together")
        try:
            semitones = transposition_semitones(from_instrument, to_instrument)
        except KeyError as e:
            raise click.BadParameter(str(e.args[0])) from e

    result = evaluate_documents(
        Path(reference).read_bytes(),
        Path(student).read_bytes(),
        semitones or 0,
        tolerance=tolerance,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"Score: {result.percentage}% ({result.correct_notes}/{result.total_notes} correct)")
    click.echo(f"Incorrect: {result.incorrect_notes}, Missing: {result.missing_notes}, "
               f"Extra: {result.extra_notes}")
    errors = [c for c in result.details if not c.is_correct]
    if errors:
        click.echo("\nDiscrepancies:")
        for c in errors:
            expected = c.expected.name if c.expected else "-"
            actual = c.actual.name if c.actual else "-"
            click.echo(f"  beat {float(c.position):g}: {c.error_kind.value:<9} "
                       f"expected {expected}, got {actual}")


@cli.command("parse")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print notes as JSON")
def parse(path: str, as_json: bool):
    """List the notes found in a MusicXML/MXL file."""
    notes = parse_notes(Path(path).read_bytes())
    if as_json:
        click.echo(json.dumps([n.to_dict() for n in notes], indent=2))
        return
    if not notes:
        click.echo("No notes found", err=True)
        raise SystemExit(1)
    for n in notes:
        click.echo(f"{float(n.position):>8g}  {n.name:<4} {n.type.value:<8} midi={n.midi}")
    click.echo(f"\n{len(notes)} notes")


@cli.command("grade-attempt")
@click.argument("attempt_id")
@click.option("--db", "database_url", help="Database URL (overrides config)")
@click.option("--storage-dir", type=click.Path(exists=True, file_okay=False),
              help="Read notation files from {dir}/{bucket}/{path}")
@click.option("--trace-dir", type=click.Path(), help="Write a JSONL grading trace here")
@click.pass_obj
def grade_attempt(
    cfg: GraderConfig,
    attempt_id: str,
    database_url: str | None,
    storage_dir: str | None,
    trace_dir: str | None,
):
    """Auto-grade the ungraded answers of ATTEMPT_ID."""
    cfg = cfg.merged({"database_url": database_url, "trace_dir": trace_dir})
    with build_orchestrator(cfg, storage_dir=storage_dir) as orchestrator:
        try:
            report = orchestrator.grade_attempt(attempt_id)
        except NotFoundError as e:
            click.echo(f"✗ {e}", err=True)
            raise SystemExit(1)

    for outcome in report.outcomes:
        if outcome.reason:
            click.echo(f"  {outcome.answer_id}: {outcome.status.value} ({outcome.reason})")
        else:
            click.echo(f"  {outcome.answer_id}: {outcome.status.value} "
                       f"{outcome.points_earned} pts [{outcome.method}]")
    attempt = report.attempt
    click.echo(f"Graded {len(report.graded)}, skipped {len(report.skipped)}, "
               f"failed {len(report.failed)}")
    click.echo(f"Attempt {attempt.id}: {attempt.status.value} "
               f"{attempt.score}/{attempt.total_points}")


@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--db", "database_url", help="Database URL (overrides config)")
@click.option("--storage-dir", type=click.Path(exists=True, file_okay=False),
              help="Read notation files from {dir}/{bucket}/{path}")
@click.option("--log-level", default="info", show_default=True)
@click.pass_obj
def serve(
    cfg: GraderConfig,
    host: str,
    port: int,
    database_url: str | None,
    storage_dir: str | None,
    log_level: str,
):
    """Run the HTTP API."""
    import uvicorn

    from .api.server import create_app

    cfg = cfg.merged({"database_url": database_url})
    app = create_app(build_orchestrator(cfg, storage_dir=storage_dir))
    uvicorn.run(app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    cli()
