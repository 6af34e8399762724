from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.progress import Progress
from rich.table import Table

from avis.config import AppConfig, default_config_path, load_config, write_default_config
from avis.crawler import crawl, group_raw_jpg_paths
from avis.metadata import MetadataCache, format_string_with_metadata
from avis.models import METADATA_PROFILE_DESCRIPTION
from avis.pipeline import ImagePipeline
from avis.query import Predicate, SqlOperator, SqlOrder
from avis.texture import TextureRegistry
from avis.util.logging import setup_logging, use_color

app = typer.Typer(help="avis: metadata cache and image pipeline tools")


@dataclass(slots=True)
class AppState:
    cfg: AppConfig
    cache: MetadataCache
    console: Console
    config_path: Path


def _state(ctx: typer.Context) -> AppState:
    st = ctx.obj
    if not isinstance(st, AppState):
        raise RuntimeError("app state not initialized")
    return st


def _emit_obj(console: Console, obj: dict, json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))
        return
    for k, v in obj.items():
        console.print(f"[bold]{k}[/bold]: {v}")


def _emit_list(console: Console, title: str, rows: list[str], json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    if not rows:
        console.print("[dim]no results[/dim]")
        return
    table = Table(title=title)
    table.add_column(title)
    for row in rows:
        table.add_row(row)
    console.print(table)


def _parse_predicates(terms: list[str]) -> list[Predicate]:
    if len(terms) % 3 != 0:
        raise typer.BadParameter("filters are FIELD OPERATOR VALUE triples")
    predicates = []
    for i in range(0, len(terms), 3):
        field, op, value = terms[i : i + 3]
        try:
            operator = SqlOperator.parse(op)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        predicates.append(Predicate(field=field, value=value, operator=operator))
    return predicates


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[Path | None, typer.Option("--config", help="Config YAML path")] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Metadata database path")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    setup_logging(verbose)
    cfg_path = config.expanduser() if config else default_config_path()
    if not cfg_path.exists():
        write_default_config(cfg_path)
    overrides: dict[str, Any] = {"db_path": str(db.expanduser())} if db else {}
    cfg = load_config(cfg_path, overrides)
    cache = MetadataCache.from_config(cfg)
    color_on = use_color()
    console = Console(color_system="auto" if color_on else None, force_terminal=color_on)
    if not cache.initialize():
        console.print(f"[red]could not open metadata database:[/red] {cfg.db_path}")
        raise typer.Exit(1)
    ctx.obj = AppState(cfg=cfg, cache=cache, console=console, config_path=cfg_path)


@app.command("init-config")
def init_config(
    ctx: typer.Context,
    path: Annotated[Path | None, typer.Option("--path", help="Write config to this path")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    written = write_default_config(path.expanduser() if path else None)
    _emit_obj(st.console, {"config_path": str(written)}, json_out)


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    root: Annotated[Path, typer.Argument(help="Directory to crawl recursively")],
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    root = root.expanduser().resolve()
    if not root.is_dir():
        st.console.print(f"[red]not a directory:[/red] {root}")
        raise typer.Exit(1)

    trimmed = st.cache.trim(st.cfg.general.limit_cached)
    paths = crawl(root, flatten=True)
    if not json_out:
        st.console.print(f"[cyan]importing[/cyan] {len(paths)} images from {root}")
    with Progress(console=st.console, disable=json_out) as progress:
        task = progress.add_task("caching metadata", total=None)

        def _advance(done: int, total: int) -> None:
            progress.update(task, completed=done, total=total)

        written = st.cache.cache_metadata_for(paths, progress=_advance)
    cleaned = st.cache.cleanup()
    _emit_obj(st.console, {"found": len(paths), "cached": written, "trimmed": trimmed, "cleaned": cleaned}, json_out)


@app.command("clean")
def clean_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    _emit_obj(st.console, {"cleaned": st.cache.cleanup()}, json_out)


@app.command("trim")
def trim_cmd(
    ctx: typer.Context,
    limit: Annotated[int | None, typer.Option("--limit", help="Rows to keep (default: general.limit_cached)")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    keep = st.cfg.general.limit_cached if limit is None else limit
    if keep < 0:
        raise typer.BadParameter("--limit must be >= 0")
    _emit_obj(st.console, {"removed": st.cache.trim(keep), "remaining": st.cache.count()}, json_out)


@app.command("count")
def count_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    _emit_obj(st.console, {"records": st.cache.count()}, json_out)


@app.command("show")
def show_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="Image path")],
    all_tags: Annotated[bool, typer.Option("--all", help="Print every tag, not only the configured ones")] = False,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    path = path.expanduser().resolve()
    fields = st.cache.get_metadata(path)
    if fields is None:
        st.console.print(f"[red]no metadata for[/red] {path}")
        raise typer.Exit(1)

    shown = fields if all_tags else {k: fields[k] for k in st.cfg.general.metadata_tags if k in fields}
    if json_out:
        typer.echo(json.dumps({"path": str(path), "metadata": shown}, indent=2, ensure_ascii=False))
        return

    st.console.print(f"[bold]{format_string_with_metadata(st.cfg.image_view.name_format, fields) or path.name}[/bold]")
    table = Table(title=str(path))
    table.add_column("tag")
    table.add_column("value")
    for key, value in shown.items():
        table.add_row(key, value)
    st.console.print(table)


@app.command("query")
def query_cmd(
    ctx: typer.Context,
    terms: Annotated[list[str], typer.Argument(help="FIELD OPERATOR VALUE triples, e.g. ISO '>' 800")] = [],
    order: Annotated[str, typer.Option("--order", help="Field to order by")] = "",
    desc: Annotated[bool, typer.Option("--desc", help="Descending order")] = False,
    group_raw: Annotated[bool, typer.Option("--group-raw", help="Collapse RAW+JPEG pairs to the JPEG")] = False,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    predicates = _parse_predicates(terms)
    paths = st.cache.query(predicates, order, SqlOrder.DESC if desc else SqlOrder.ASC)
    if paths is None:
        st.console.print("[red]query failed[/red]")
        raise typer.Exit(1)
    if group_raw:
        paths = group_raw_jpg_paths(paths)
    _emit_list(st.console, "path", [str(p) for p in paths], json_out)


@app.command("values")
def values_cmd(
    ctx: typer.Context,
    field: Annotated[str, typer.Argument(help="Metadata field, e.g. 'Camera Model Name'")],
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    _emit_list(st.console, field, st.cache.distinct_values(field), json_out)


@app.command("fields")
def fields_cmd(
    ctx: typer.Context,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    st = _state(ctx)
    _emit_list(st.console, "field", st.cache.distinct_field_names(), json_out)


@app.command("decode")
def decode_cmd(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="Image path")],
    size: Annotated[int | None, typer.Option("--size", help="Longest side after resizing")] = None,
    json_out: Annotated[bool, typer.Option("--json")] = False,
) -> None:
    """Run one image through the load pipeline and report the result."""
    st = _state(ctx)
    textures = TextureRegistry()
    pipeline = ImagePipeline.from_config(st.cfg, st.cache, textures)
    image = pipeline.load(path.expanduser().resolve(), size).join()
    if image is None:
        st.console.print(f"[red]failed to load[/red] {path}")
        raise typer.Exit(1)
    payload = {
        "path": str(path),
        "width": image.width,
        "height": image.height,
        "fallback": image.is_fallback,
        "profile": image.metadata.get(METADATA_PROFILE_DESCRIPTION, ""),
    }
    image.release()
    _emit_obj(st.console, payload, json_out)
    if payload["fallback"]:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
