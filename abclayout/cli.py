"""abclayout CLI entry point."""

import json
import logging
import sys
from pathlib import Path

import click

from abclayout import __version__
from abclayout.alignment import BeatAlignment
from abclayout.config import DEFAULT_MAX_LINE_WIDTH, LayoutConfig
from abclayout.exceptions import LayoutError
from abclayout.layout import Layout
from abclayout.metrics_renderer import GlyphMetricsRenderer
from abclayout.tune_loader import load_tune
from abclayout.tune_models import Tune


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load(tune_json: str) -> Tune:
    try:
        return load_tune(tune_json)
    except (OSError, ValueError, KeyError) as exc:
        click.echo(f"  ERROR: Could not read tune: {exc}", err=True)
        sys.exit(1)


def _default_output(tune_json: str) -> str:
    path = Path(tune_json)
    return str(path.with_name(f"{path.stem}.layout.json"))


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="abclayout")
def main() -> None:
    """abclayout: music notation layout engine."""


# ── layout subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("tune_json", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination JSON file. Defaults to <tune>.layout.json.",
)
@click.option(
    "--width",
    type=click.FloatRange(min=0.0, min_open=True),
    default=DEFAULT_MAX_LINE_WIDTH,
    show_default=True,
    help="Maximum staff line width before wrapping.",
)
@click.option(
    "--ignore-line-breaks",
    is_flag=True,
    default=False,
    help="Wrap on width only, ignoring the line breaks written in the tune.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log layout decisions.")
def layout(tune_json: str, output: str | None, width: float, ignore_line_breaks: bool, verbose: bool) -> None:
    """
    Lay out a parsed tune and write its geometry as JSON.

    TUNE_JSON is the tune produced by the parser, in abclayout's JSON form.

    \b
    Examples:
      abclayout layout reel.json
      abclayout layout reel.json --width 30 -o reel-narrow.json
    """
    _configure_logging(verbose)
    resolved_output = output if output is not None else _default_output(tune_json)

    click.echo(f"abclayout v{__version__}")
    click.echo(f"  Tune   : {tune_json}")
    click.echo(f"  Width  : {width}")
    click.echo(f"  Output : {resolved_output}")
    click.echo()

    # ── Step 1: Load ────────────────────────────────────────────────────
    click.echo("[1/3] Loading tune...")
    tune = _load(tune_json)
    click.echo(f"      Title  : {tune.title or '(untitled)'}")
    click.echo(f"      Voices : {len(tune.voices)}")

    # ── Step 2: Layout ──────────────────────────────────────────────────
    click.echo("[2/3] Laying out...")
    config = LayoutConfig(max_line_width=width, respect_line_breaks=not ignore_line_breaks)
    renderer = GlyphMetricsRenderer()
    outcome = Layout(renderer, config).load(tune)
    result = outcome.result
    if result is None:
        click.echo(f"  ERROR: {type(outcome.error).__name__}: {outcome.error}", err=True)
        sys.exit(1)

    click.echo(f"      Lines  : {result.line_count}")
    click.echo(f"      Items  : {len(result.handles)}")
    click.echo(f"      Beams  : {len(result.beams)}")

    # ── Step 3: Write ───────────────────────────────────────────────────
    click.echo(f"[3/3] Writing layout → '{resolved_output}'...")
    document = {"layout": result.to_dict(), "display_list": renderer.to_dict()}
    try:
        with open(resolved_output, "w") as f:
            json.dump(document, f, indent=2)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write output file: {exc}", err=True)
        sys.exit(1)

    click.echo()
    click.echo(f"Done!  Wrote {result.line_count} line(s) to '{resolved_output}'.")


# ── beats subcommand ───────────────────────────────────────────────────────────

@main.command()
@click.argument("tune_json", type=click.Path(exists=True, dir_okay=False, readable=True))
def beats(tune_json: str) -> None:
    """
    Print how each voice splits into measures and beats.

    TUNE_JSON is the tune produced by the parser, in abclayout's JSON form.
    """
    tune = _load(tune_json)

    for index, voice in enumerate(tune.voices, start=1):
        try:
            alignment = BeatAlignment(voice)
        except LayoutError as exc:
            click.echo(f"  ERROR: {type(exc).__name__}: {exc}", err=True)
            sys.exit(1)

        click.echo(f"Voice {voice.name or index} ({voice.clef.label})")
        for number, measure in enumerate(alignment.measures, start=1):
            click.echo(f"  Measure {number}  line {measure.line_number}")
            for beat in measure.beats:
                kinds = " ".join(type(item).__name__ for item in beat.items)
                click.echo(f"    beat {beat.beat_start}: {kinds}")
