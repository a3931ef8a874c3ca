#!/usr/bin/env python3
"""
Medication Viewer
Main entry point for the application
"""

import asyncio
import json
import sys

import click
import uvicorn
from loguru import logger
from tqdm import tqdm

from medication_viewer.config import settings
from medication_viewer.data_checks import DEFAULT_DATA_CHECKS, run_data_checks
from medication_viewer.database import SQLDocumentStore
from medication_viewer.export import EXPORT_FORMATS, export_medications
from medication_viewer.models import (
    DisplayMode, FilterOptions, FormFilter, MatchFilter, SortDirection, SortField, SortOptions
)
from medication_viewer.query_adapter import MedicationQueryAdapter
from medication_viewer.resolver_checks import FORM_HINTS, ROUTE_HINTS, run_checks
from medication_viewer.resolver_client import ResolverClient
from medication_viewer.exceptions import AuthenticationError, FetchError, ResolverError
from medication_viewer.viewer import MedicationViewer
from medication_viewer.views import clean_medication_name, format_number, format_price, use_system_collation


def _build_viewer() -> MedicationViewer:
    return MedicationViewer(MedicationQueryAdapter(SQLDocumentStore()))


def _render_table(medications):
    click.echo(f"{'RXCUI':<20} {'TTY':<5} {'MEDIAN':>10} {'NDCS':>5}  NAME")
    for med in medications:
        flags = ""
        if med.safety:
            flags += " [BBW]" if med.safety.has_black_box_warning else ""
            flags += f" [C{med.safety.controlled_substance_schedule or ''}]" if med.safety.is_controlled_substance else ""
            flags += " [PIM]" if med.safety.is_pim else ""
        click.echo(
            f"{med.rxcui:<20} {str(getattr(med.tty, 'value', med.tty)):<5} "
            f"{format_price(med.pricing_stats.median_unit_price, 4):>10} "
            f"{med.ndc_link_count:>5}  {clean_medication_name(med.name)}{flags}"
        )


def _render_cards(medications):
    for med in medications:
        click.echo(clean_medication_name(med.name))
        click.echo(f"  RxCUI: {med.rxcui}{'  (unmatched)' if med.is_unmatched else ''}")
        if med.classification.ingredient_name:
            click.echo(f"  Ingredient: {med.classification.ingredient_name}")
        pricing = med.pricing_stats
        click.echo(
            f"  Price: {format_price(pricing.min_unit_price, 4)} / "
            f"{format_price(pricing.median_unit_price, 4)} / "
            f"{format_price(pricing.max_unit_price, 4)} per {pricing.pricing_unit}"
        )
        form = "liquid" if med.conversion_values.is_liquid else "solid"
        click.echo(f"  Form: {form}   NDCs: {format_number(med.ndc_link_count)}")
        click.echo("")


def _echo_footer(viewer: MedicationViewer):
    stats = viewer.stats
    total_pages = viewer.total_pages or "?"
    click.echo(f"Page {viewer.state.current_page} of {total_pages} | "
               f"{stats.page_count} loaded, total {format_number(stats.total)}")
    click.echo(f"Matched: {stats.matched}  Unmatched: {stats.unmatched}  "
               f"Liquids: {stats.liquids}  Solids: {stats.solids}  "
               f"NDCs: {format_number(stats.total_ndcs)}  "
               f"Avg median price: {format_price(stats.avg_median_price, 4)}")


@click.group()
@click.option('--log-level', default=settings.LOG_LEVEL, help='Logging level')
def cli(log_level):
    """Medication Viewer"""
    logger.remove()
    logger.add(lambda msg: click.echo(msg, nl=False, err=True), level=log_level)
    if settings.LOG_FILE:
        logger.add(settings.LOG_FILE, level="DEBUG", rotation="10 MB", retention="10 days")
    use_system_collation()
    logger.debug(f"Starting Medication Viewer with log level: {log_level}")


@cli.command()
@click.option('--page', default=1, help='Page number to show')
@click.option('--search', default='', help='Free-text search on name, RxCUI or ingredient')
@click.option('--match', 'match_filter', type=click.Choice([m.value for m in MatchFilter]),
              default=MatchFilter.EITHER.value, help='Matched/unmatched filter')
@click.option('--form', 'form_filter', type=click.Choice([f.value for f in FormFilter]),
              default=FormFilter.EITHER.value, help='Liquid/solid filter')
@click.option('--min-ndc', default=0, help='Minimum number of linked NDCs')
@click.option('--sort', 'sort_field', type=click.Choice([s.value for s in SortField]),
              default=SortField.NAME.value, help='Sort field')
@click.option('--desc', is_flag=True, help='Sort descending')
@click.option('--mode', type=click.Choice([m.value for m in DisplayMode]),
              default=DisplayMode.TABLE.value, help='Display mode')
def browse(page, search, match_filter, form_filter, min_ndc, sort_field, desc, mode):
    """Show one page of medications"""
    viewer = _build_viewer()

    async def run():
        await viewer.initialize()
        if page != 1 and not viewer.state.session_blocked:
            await viewer.load_page(page)

    asyncio.run(run())

    if viewer.state.error:
        click.echo(f"Error: {viewer.state.error}", err=True)
        if not viewer.medications:
            sys.exit(1)

    viewer.set_filters(FilterOptions(
        search_query=search,
        match_filter=MatchFilter(match_filter),
        form_filter=FormFilter(form_filter),
        min_ndc_count=min_ndc
    ))
    viewer.set_sort(SortOptions(
        field=SortField(sort_field),
        direction=SortDirection.DESC if desc else SortDirection.ASC
    ))
    viewer.set_display_mode(DisplayMode(mode))

    visible = viewer.sorted_medications
    if viewer.empty_state == "no_data":
        click.echo("No medications loaded.")
    elif viewer.empty_state == "filtered_out":
        click.echo("No medications match the current filters.")
    elif viewer.state.display_mode == DisplayMode.TABLE:
        _render_table(visible)
    else:
        _render_cards(visible)

    _echo_footer(viewer)


@cli.command()
@click.argument('rxcui')
def lookup(rxcui):
    """Print the full document of one medication"""
    viewer = _build_viewer()
    try:
        medication = asyncio.run(viewer.lookup(rxcui))
    except FetchError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if medication is None:
        click.echo(f"Medication not found: {rxcui}", err=True)
        sys.exit(1)

    click.echo(json.dumps(medication.to_document(), indent=2))


@cli.command()
@click.option('--export', 'export_path', type=click.Path(dir_okay=False), default=None,
              help='Write the loaded medications to this file')
@click.option('--format', 'export_format', type=click.Choice(EXPORT_FORMATS), default='json',
              help='Export format')
def load_all(export_path, export_format):
    """Load every medication and print summary statistics"""
    viewer = _build_viewer()

    with tqdm(desc="Loading medications", unit="med") as pbar:
        def track(current: MedicationViewer):
            if current.state.total_count is not None:
                pbar.total = current.state.total_count
            pbar.update(current.state.loading_progress - pbar.n)

        viewer.subscribe(track)

        async def run():
            await viewer.adapter.connect()
            await viewer.load_all()

        try:
            asyncio.run(run())
        except AuthenticationError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if viewer.state.error:
        click.echo(f"Error: {viewer.state.error}", err=True)
        sys.exit(1)

    _echo_footer(viewer)

    if export_path:
        export_medications(viewer.sorted_medications, export_path, export_format)
        click.echo(f"Exported {len(viewer.medications)} medications to {export_path}")


@cli.command()
def status():
    """Show document store status"""
    store = SQLDocumentStore()
    adapter = MedicationQueryAdapter(store)
    count = asyncio.run(adapter.count())

    click.echo("=== Medication Viewer Status ===")
    click.echo(f"Document store: {settings.DATABASE_URL}")
    click.echo(f"Database Status: {'connected' if store.is_connected() else 'disconnected'}")
    click.echo(f"Total Medications: {format_number(count)}")
    click.echo(f"Page Size: {settings.PAGE_SIZE}")


@cli.command()
@click.option('--host', default=settings.API_HOST, help='Host to bind to')
@click.option('--port', default=settings.API_PORT, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
def serve_api(host, port, reload):
    """Start the API server"""
    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run(
        "medication_viewer.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


@cli.command()
@click.argument('text')
@click.option('--route', type=click.Choice(ROUTE_HINTS), default=None, help='Route hint')
@click.option('--form', type=click.Choice(FORM_HINTS), default=None, help='Form hint')
@click.option('--debug', is_flag=True, help='Include top candidates')
@click.option('--allow-ingredient-only', is_flag=True, help='Accept ingredient-level matches')
def resolve(text, route, form, debug, allow_ingredient_only):
    """Resolve a free-text medication description to an RxCUI"""
    client = ResolverClient()
    try:
        response = client.resolve(text, route_hint=route, form_hint=form, debug=debug,
                                  allow_ingredient_only=allow_ingredient_only or None)
    except ResolverError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(response.model_dump(exclude_none=True), indent=2))


@cli.command()
def resolver_check():
    """Run the known resolver checks and report pass/fail"""
    results = run_checks(ResolverClient())

    for result in results:
        marker = {"passed": "PASS", "failed": "FAIL", "error": "ERR "}[result.status]
        detail = result.error or (
            f"rxcui={result.response.rxcui} confidence={result.response.confidence}"
            if result.response else ""
        )
        click.echo(f"[{marker}] {result.check.text} ({result.duration * 1000:.0f} ms) {detail}")

    passed = sum(1 for r in results if r.status == "passed")
    click.echo(f"\n{passed}/{len(results)} checks passed")
    if passed != len(results):
        sys.exit(1)


@cli.command()
@click.option('--category', type=click.Choice(['conversion', 'pricing', 'rxnorm', 'atc']), default=None,
              help='Only run checks of this category')
def data_check(category):
    """Compare known medications in the store against expected values"""
    viewer = _build_viewer()
    checks = None
    if category:
        checks = [c for c in DEFAULT_DATA_CHECKS if c.category == category]

    async def run():
        await viewer.adapter.connect()
        return await run_data_checks(viewer.adapter, checks)

    try:
        results = asyncio.run(run())
    except AuthenticationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for result in results:
        marker = {"passed": "PASS", "failed": "FAIL", "error": "ERR "}[result.status]
        click.echo(f"[{marker}] {result.check.id} {result.check.name} (RxCUI {result.check.rxcui})")
        if result.error:
            click.echo(f"       {result.error}")
        for detail in result.details:
            if not detail.passed:
                click.echo(f"       {detail.field}: expected {detail.expected}, got {detail.actual}")

    passed = sum(1 for r in results if r.status == "passed")
    click.echo(f"\n{passed}/{len(results)} checks passed")
    if passed != len(results):
        sys.exit(1)


if __name__ == '__main__':
    cli()
