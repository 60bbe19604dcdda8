"""CLI for the listing normalization and filtered query engine."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import geo
from .aggregates import AggregateRecalculator, ReviewService, validate_rating
from .config import (
    get_geocoding_settings,
    get_map_settings,
    get_market_settings,
    get_pagination_settings,
    get_storage_path,
    load_config,
)
from .filters import PROPERTIES, PROVIDERS, Catalog, FilterQueryBuilder
from .geocode import GoogleGeocoder
from .normalize import RecordNormalizer
from .storage import Storage, StoreError, export_csv, export_json

app = typer.Typer(
    name="listing-engine",
    help="Normalize property listings and query properties and service providers.",
)
search_app = typer.Typer(help="Filtered, paginated queries.")
review_app = typer.Typer(help="Write provider reviews and keep aggregates in sync.")
app.add_typer(search_app, name="search")
app.add_typer(review_app, name="review")

console = Console()
err_console = Console(stderr=True)

ConfigOption = typer.Option(None, "--config", "-c", help="Path to config.yaml")
DbOption = typer.Option(None, "--db", help="DuckDB file (default: storage.db_path from config)")
ParamOption = typer.Option(None, "--param", "-p", help="Query parameter as key=value (repeatable)")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    _setup_logging(verbose)


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _load_config(config_path: Optional[Path]) -> dict[str, Any]:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        _fail(str(e))


def _get_storage(cfg: dict[str, Any], db: Optional[Path]) -> Storage:
    return Storage(db or get_storage_path(cfg))


def _parse_params(pairs: Optional[list[str]]) -> dict[str, list[str]]:
    """Collect ``key=value`` pairs; repeated keys become multi-valued."""
    params: dict[str, list[str]] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--param")
        params.setdefault(key.strip(), []).append(value)
    return params


def _run_search(cfg: dict[str, Any], db: Optional[Path], catalog: Catalog, params: dict[str, list[str]]) -> list[dict[str, Any]]:
    storage = _get_storage(cfg, db)
    try:
        builder = FilterQueryBuilder(catalog, get_pagination_settings(cfg), store=storage)
        return builder.search(params)
    except StoreError as e:
        _fail(f"Store error: {e}")
    finally:
        storage.close()


def _fmt_money(value: Optional[float], currency: Optional[str]) -> str:
    if value is None:
        return "-"
    return f"{currency or ''} {value:,.0f}".strip()


def _display_listings(listings: list) -> None:
    if not listings:
        console.print("[yellow]No matching properties.[/yellow]")
        return
    table = Table(title=f"Properties ({len(listings)})")
    table.add_column("Ref", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("City", style="dim")
    table.add_column("Price", justify="right")
    table.add_column("Beds", justify="right")
    table.add_column("Baths", justify="right")
    table.add_column("Status")
    for l in listings:
        title = l.title or ""
        table.add_row(
            l.reference or "-",
            title[:30] + "..." if len(title) > 30 else title,
            l.city or "",
            _fmt_money(l.price, l.currency),
            "-" if l.beds is None else str(l.beds),
            "-" if l.baths is None else f"{l.baths:g}",
            l.status or "",
        )
    console.print(table)


def _display_providers(providers: list) -> None:
    if not providers:
        console.print("[yellow]No matching providers.[/yellow]")
        return
    table = Table(title=f"Service providers ({len(providers)})")
    table.add_column("Ref", style="dim")
    table.add_column("Company", style="cyan")
    table.add_column("Category")
    table.add_column("City", style="dim")
    table.add_column("Rating", justify="right")
    table.add_column("Reviews", justify="right")
    table.add_column("Featured", justify="center")
    for p in providers:
        table.add_row(
            p.reference or "-",
            p.company_name or "",
            p.category or "",
            p.city or "",
            f"{p.rating:.1f}",
            str(p.review_count),
            "✓" if p.featured else "",
        )
    console.print(table)


@app.command()
def load(
    path: Path = typer.Argument(..., help="JSON file with 'properties', 'providers' and 'reviews' arrays"),
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """Load raw records into the store and recalculate provider aggregates."""
    cfg = _load_config(config_path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        _fail(f"Could not read {path}: {e}")
    if not isinstance(data, dict):
        _fail(f"{path} must contain a JSON object")

    storage = _get_storage(cfg, db)
    recalculator = AggregateRecalculator(storage)
    try:
        with storage.transaction():
            properties = [storage.save_property(r) for r in data.get("properties", []) if isinstance(r, dict)]
            providers = [storage.save_provider(r) for r in data.get("providers", []) if isinstance(r, dict)]
            touched: set[int] = set()
            reviews = 0
            for r in data.get("reviews", []):
                if not isinstance(r, dict):
                    continue
                provider_id = r.get("providerId", r.get("provider_id"))
                storage.insert_review(
                    provider_id,
                    validate_rating(r.get("rating")),
                    review=r.get("review"),
                    reviewer_name=r.get("reviewerName", r.get("reviewer_name")),
                )
                touched.add(provider_id)
                reviews += 1
            for provider_id in sorted(touched):
                recalculator.recalculate(provider_id)
    except (StoreError, ValueError) as e:
        _fail(f"Load failed: {e}")
    finally:
        storage.close()

    console.print(
        f"[green]Loaded {len(properties)} properties, {len(providers)} providers, {reviews} reviews[/green]"
    )


@search_app.command("properties")
def search_properties(
    param: Optional[list[str]] = ParamOption,
    as_json: bool = typer.Option(False, "--json", help="Print normalized listings as JSON"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Export to .json or .csv"),
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """Search properties, e.g. -p city=gabo -p minBedrooms=3 -p sortBy=price_low."""
    cfg = _load_config(config_path)
    rows = _run_search(cfg, db, PROPERTIES, _parse_params(param))
    normalizer = RecordNormalizer(get_market_settings(cfg))
    listings = [normalizer.normalize(r) for r in rows]

    if out:
        if out.suffix.lower() == ".csv":
            export_csv(listings, out)
        else:
            export_json(listings, out)
        console.print(f"[dim]Exported {len(listings)} listings to {out}[/dim]")
    if as_json:
        typer.echo(json.dumps([l.to_dict() for l in listings], indent=2, default=str))
    elif not out:
        _display_listings(listings)


@search_app.command("providers")
def search_providers(
    param: Optional[list[str]] = ParamOption,
    as_json: bool = typer.Option(False, "--json", help="Print normalized providers as JSON"),
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """Search service providers, e.g. -p category=plumbing -p minRating=4."""
    cfg = _load_config(config_path)
    rows = _run_search(cfg, db, PROVIDERS, _parse_params(param))
    normalizer = RecordNormalizer(get_market_settings(cfg))
    providers = [normalizer.normalize_provider(r) for r in rows]
    if as_json:
        typer.echo(json.dumps([p.to_dict() for p in providers], indent=2, default=str))
    else:
        _display_providers(providers)


@review_app.command("add")
def review_add(
    provider_id: int = typer.Argument(..., help="Service provider id"),
    rating: int = typer.Argument(..., help="Whole stars, 1-5"),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Review text"),
    name: Optional[str] = typer.Option(None, "--name", help="Reviewer name"),
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """Add a review and recalculate the provider's rating."""
    cfg = _load_config(config_path)
    storage = _get_storage(cfg, db)
    try:
        review, stats = ReviewService(storage).create_review(provider_id, rating, review=text, reviewer_name=name)
    except (StoreError, ValueError) as e:
        _fail(str(e))
    finally:
        storage.close()
    console.print(
        f"[green]Review {review.id} saved.[/green] Provider {provider_id}: "
        f"{stats.rating:.1f} from {stats.review_count} reviews"
    )


@review_app.command("update")
def review_update(
    review_id: int = typer.Argument(..., help="Review id"),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", help="New rating, 1-5"),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="New review text"),
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """Edit a review and recalculate the provider's rating."""
    cfg = _load_config(config_path)
    storage = _get_storage(cfg, db)
    try:
        review, stats = ReviewService(storage).update_review(review_id, rating=rating, review=text)
    except (StoreError, ValueError) as e:
        _fail(str(e))
    finally:
        storage.close()
    console.print(
        f"[green]Review {review.id} updated.[/green] Provider {review.provider_id}: "
        f"{stats.rating:.1f} from {stats.review_count} reviews"
    )


@app.command()
def categories(
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """List the service categories providers are registered under."""
    cfg = _load_config(config_path)
    storage = _get_storage(cfg, db)
    try:
        names = storage.service_categories()
    except StoreError as e:
        _fail(str(e))
    finally:
        storage.close()
    typer.echo(json.dumps(names))


@app.command()
def recalc(
    provider_id: int = typer.Argument(..., help="Service provider id"),
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """Recompute a provider's rating and review count from its reviews."""
    cfg = _load_config(config_path)
    storage = _get_storage(cfg, db)
    try:
        if storage.get_provider(provider_id) is None:
            _fail(f"Unknown provider: {provider_id}")
        stats = AggregateRecalculator(storage).recalculate(provider_id)
    except StoreError as e:
        _fail(str(e))
    finally:
        storage.close()
    typer.echo(json.dumps(stats.to_dict()))


@app.command()
def viewport(
    param: Optional[list[str]] = ParamOption,
    config_path: Optional[Path] = ConfigOption,
    db: Optional[Path] = DbOption,
) -> None:
    """Map center and zoom framing the properties a search returns."""
    cfg = _load_config(config_path)
    rows = _run_search(cfg, db, PROPERTIES, _parse_params(param))
    view = geo.compute_viewport(
        ((r.get("latitude"), r.get("longitude")) for r in rows),
        get_map_settings(cfg),
    )
    typer.echo(json.dumps(view.to_dict()))


@app.command()
def geocode(
    address: str = typer.Argument(..., help="Street address"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """Resolve an address to coordinates inside the configured market."""
    cfg = _load_config(config_path)
    coord = GoogleGeocoder(settings=get_geocoding_settings(cfg)).geocode(address)
    if coord is None:
        _fail(f"Could not geocode {address!r}")
    typer.echo(json.dumps({"latitude": coord.latitude, "longitude": coord.longitude}))


if __name__ == "__main__":
    app()
