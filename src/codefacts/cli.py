"""codefacts CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click

from codefacts import __version__
from codefacts.errors import CodefactsError

if TYPE_CHECKING:
    import sqlite3

    from codefacts.infrastructure.config import CodefactsConfig
    from codefacts.infrastructure.state import ProjectState
    from codefacts.llm import Completion

logger = logging.getLogger(__name__)

_project_option = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: git work tree or current directory).",
)


def _setup_logging(*, verbose: bool, quiet: bool) -> None:
    """Route ``codefacts.*`` log records to stderr through rich."""
    from rich.console import Console
    from rich.logging import RichHandler

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    pkg_logger = logging.getLogger("codefacts")
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(level)


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _project_root(project: Path | None) -> Path:
    from codefacts.infrastructure.state import detect_project_root

    return project if project is not None else detect_project_root()


def _load_config(project_root: Path) -> CodefactsConfig:
    from codefacts.infrastructure.config import load_config

    try:
        return load_config(project_root)
    except CodefactsError as exc:
        _fail(str(exc))


def _load_state(project_root: Path) -> ProjectState:
    from codefacts.infrastructure.state import ProjectState

    try:
        return ProjectState.load(project_root)
    except CodefactsError as exc:
        _fail(str(exc))


def _open_existing_index(project_root: Path) -> sqlite3.Connection:
    """Open the index for a read command; exit 1 if it was never created."""
    from codefacts.infrastructure.db import db_path_for, open_db

    db_path = db_path_for(project_root)
    if not db_path.exists():
        _fail("index not found. Run `codefacts init` and `codefacts scan` first.")
    try:
        return open_db(db_path)
    except CodefactsError as exc:
        _fail(str(exc))


def _echo_completion(completion: Completion) -> None:
    click.echo(completion.output_text)
    if completion.usage is not None:
        u = completion.usage
        click.echo(
            f"usage: input={u.input_tokens}, output={u.output_tokens}, total={u.total_tokens}",
            err=True,
        )


@click.group()
@click.version_option(version=__version__, prog_name="codefacts")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """codefacts - incremental tag index and fact sheets for code explanation."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _setup_logging(verbose=verbose, quiet=quiet)


@main.command()
@click.option("--namespace", default=None, help="Namespace (default: <dirname>@main).")
@_project_option
def init(*, namespace: str | None, project: Path | None) -> None:
    """Create .codefacts/ with the project state and an empty index."""
    from codefacts.infrastructure.db import db_path_for, open_db
    from codefacts.infrastructure.state import ProjectState, default_namespace

    project_root = _project_root(project)
    state = ProjectState.create(namespace or default_namespace(project_root))
    state_file = state.save(project_root)
    db_path = db_path_for(project_root)
    try:
        conn = open_db(db_path)
    except CodefactsError as exc:
        _fail(str(exc))
    conn.close()

    click.echo(f"Initialized {project_root}")
    click.echo(f"  namespace: {state.namespace}")
    click.echo(f"  state:     {state_file}")
    click.echo(f"  index:     {db_path}")


@main.command()
@_project_option
def scan(*, project: Path | None) -> None:
    """Walk the project tree and record file fingerprints."""
    from codefacts.catalog.scanner import scan as do_scan
    from codefacts.infrastructure.db import db_path_for, open_db
    from codefacts.infrastructure.stats import human_size

    project_root = _project_root(project)
    cfg = _load_config(project_root)
    state = _load_state(project_root)
    try:
        conn = open_db(db_path_for(project_root))
    except CodefactsError as exc:
        _fail(str(exc))
    try:
        result = do_scan(conn, project_root, state.namespace, policy=cfg.scan_policy)
    finally:
        conn.close()

    click.echo(
        f"Scanned {result.files_seen} files ({human_size(result.bytes_seen)}) "
        f"in namespace {state.namespace}"
    )
    for warning in result.warnings:
        click.echo(f"  warning: {warning}", err=True)


@main.command()
@_project_option
def index(*, project: Path | None) -> None:
    """Run the tagger over changed files and rebuild their tags and chunks."""
    from codefacts.indexing.ingest import index as do_index
    from codefacts.indexing.tagger import make_tagger
    from codefacts.infrastructure.db import db_path_for, open_db

    project_root = _project_root(project)
    cfg = _load_config(project_root)
    state = _load_state(project_root)
    try:
        conn = open_db(db_path_for(project_root))
        try:
            result = do_index(
                conn, project_root, state.namespace, tagger=make_tagger(cfg.tagger_command)
            )
        finally:
            conn.close()
    except CodefactsError as exc:
        _fail(str(exc))

    if result.nothing_changed:
        click.echo("Nothing to index: all files are up to date.")
        return
    click.echo(
        f"Indexed {result.files_indexed} files: "
        f"{result.tags_indexed} tags, {result.chunks_indexed} chunks"
    )
    if result.files_skipped:
        click.echo(f"Skipped {result.files_skipped} unreadable files (still pending)")
    for warning in result.warnings:
        click.echo(f"  warning: {warning}", err=True)


@main.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@_project_option
def stats(*, output_json: bool, project: Path | None) -> None:
    """Show index statistics for the current namespace."""
    from dataclasses import asdict

    from codefacts.infrastructure.db import db_path_for
    from codefacts.infrastructure.stats import collect_stats, format_ts, human_size

    project_root = _project_root(project)
    state = _load_state(project_root)
    conn = _open_existing_index(project_root)
    try:
        st = collect_stats(conn, state.namespace, db_path_for(project_root))
    finally:
        conn.close()

    if output_json:
        click.echo(json.dumps(asdict(st), ensure_ascii=False, indent=2))
        return

    from rich.console import Console
    from rich.panel import Panel
    from rich.table import Table

    console = Console()
    console.print(Panel(
        f"{st.db_path} ({human_size(st.db_bytes)})",
        title=f"codefacts v{__version__} | {st.namespace}",
        border_style="blue",
    ))

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("metric", style="cyan")
    table.add_column("value", justify="right")
    table.add_row("Files", str(st.files_total))
    table.add_row("Indexed", str(st.files_indexed))
    table.add_row("Pending", str(st.files_pending))
    table.add_row("Size", human_size(st.bytes_total))
    table.add_row("Tags", str(st.tags))
    table.add_row("Chunks", f"{st.chunks} (text {human_size(st.chunk_text_bytes)})")
    table.add_row("Last seen", format_ts(st.last_seen_at))
    table.add_row("Last indexed", format_ts(st.last_indexed_at))
    console.print(table)

    if st.doc_kinds:
        kinds = Table(title="By Kind", show_header=False, box=None, padding=(0, 1))
        kinds.add_column("kind", style="cyan")
        kinds.add_column("count", justify="right")
        for kind, count in st.doc_kinds:
            kinds.add_row(kind, str(count))
        console.print()
        console.print(kinds)


@main.command()
@click.argument("query")
@click.option(
    "--kind",
    type=click.Choice(["function", "class", "namespace", "enum", "union", "typedef", "block"]),
    default=None,
    help="Filter results by chunk kind.",
)
@click.option("--limit", default=10, type=int, help="Max results.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@_project_option
def search(
    query: str,
    *,
    kind: str | None,
    limit: int,
    output_json: bool,
    project: Path | None,
) -> None:
    """Full-text search over indexed chunks."""
    from codefacts.context_oracle.search import has_fts5, search_chunks

    project_root = _project_root(project)
    state = _load_state(project_root)
    conn = _open_existing_index(project_root)
    try:
        if not has_fts5(conn):
            _fail("search index is empty. Run `codefacts index` first.")
        results = search_chunks(conn, state.namespace, query, kind=kind, limit=limit)
    finally:
        conn.close()

    if output_json:
        click.echo(json.dumps(results, ensure_ascii=False, indent=2))
        return
    if not results:
        click.echo("No results found.")
        return
    for r in results:
        symbol = r["symbol"] or "-"
        click.echo(f"{r['path']}:{r['begin_line']}-{r['end_line']} [{r['kind']}] {symbol}")
        click.echo(f"  {r['snippet'].strip()}")


@main.command()
@click.option("--symbol", default=None, help="Symbol name, optionally scope-qualified (A::B).")
@click.option("--file", "file_path", default=None, help="Project-relative file path.")
@click.option("--lines", default=None, help="Line range A:B within --file.")
@click.option("--window", type=click.IntRange(min=0), default=None, help="Context margin.")
@click.option("--facts-only", is_flag=True, help="Print the fact sheet, do not call the model.")
@click.option("--model", default=None, help="Model override.")
@click.option("--max-output", type=click.IntRange(min=1), default=None, help="Max output tokens.")
@_project_option
def explain(
    *,
    symbol: str | None,
    file_path: str | None,
    lines: str | None,
    window: int | None,
    facts_only: bool,
    model: str | None,
    max_output: int | None,
    project: Path | None,
) -> None:
    """Explain a symbol or a line range from indexed facts."""
    from codefacts.context_oracle.assembler import assemble
    from codefacts.context_oracle.facts import EXPLAIN_SYSTEM_PROMPT, render_facts, with_language
    from codefacts.context_oracle.resolver import resolve
    from codefacts.llm import generate

    project_root = _project_root(project)
    cfg = _load_config(project_root)
    state = _load_state(project_root)
    conn = _open_existing_index(project_root)
    try:
        target = resolve(
            conn, project_root, state.namespace, symbol=symbol, file=file_path, lines=lines
        )
        if target is None:
            msg = "nothing to explain: pass --symbol, or --file together with --lines"
            raise click.UsageError(msg)
        margin = window if window is not None else cfg.explain_window
        facts = render_facts(target, assemble(conn, project_root, state.namespace, target, margin))
    except CodefactsError as exc:
        _fail(str(exc))
    finally:
        conn.close()

    if facts_only:
        click.echo(facts)
        return
    try:
        completion = generate(
            cfg.llm_config(model=model, max_output_tokens=max_output),
            with_language(EXPLAIN_SYSTEM_PROMPT, cfg.lang),
            facts,
        )
    except CodefactsError as exc:
        _fail(str(exc))
    _echo_completion(completion)


@main.command()
@click.option("--build-limit", default=40, type=click.IntRange(min=1), help="Max build facts.")
@click.option("--llm", "use_llm", is_flag=True, help="Send the facts to the model for a review.")
@click.option(
    "--system-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Custom system instructions for the review (implies --llm).",
)
@click.option("--model", default=None, help="Model override.")
@click.option("--max-output", type=click.IntRange(min=1), default=None, help="Max output tokens.")
@_project_option
def summarize(
    *,
    build_limit: int,
    use_llm: bool,
    system_file: Path | None,
    model: str | None,
    max_output: int | None,
    project: Path | None,
) -> None:
    """Print project-level facts: build, entry points, structure, TODOs."""
    from codefacts.context_oracle.facts import SUMMARY_SYSTEM_PROMPT, with_language
    from codefacts.context_oracle.summary import summarize as do_summarize
    from codefacts.llm import generate

    project_root = _project_root(project)
    state = _load_state(project_root)
    conn = _open_existing_index(project_root)
    try:
        facts = do_summarize(
            conn, project_root, state.namespace, build_limit=build_limit
        ).render()
    finally:
        conn.close()

    if not use_llm and system_file is None:
        click.echo(facts)
        return
    cfg = _load_config(project_root)
    if system_file is not None:
        try:
            system_text = system_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            _fail(f"cannot read {system_file}: {exc}")
    else:
        system_text = with_language(SUMMARY_SYSTEM_PROMPT, cfg.lang)
    user_text = (
        "Below are facts about the project (BUILD/ENTRYPOINTS/STRUCTURE/TODOs). "
        f"Prepare an overview.\n{facts}"
    )
    try:
        completion = generate(
            cfg.llm_config(model=model, max_output_tokens=max_output),
            system_text,
            user_text,
        )
    except CodefactsError as exc:
        _fail(str(exc))
    _echo_completion(completion)


@main.command()
@click.argument("prompt")
@click.option("--system", "system_text", default="", help="System instructions.")
@click.option(
    "--file",
    "attach",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Attach a file to the request.",
)
@click.option("--model", default=None, help="Model override.")
@click.option("--max-output", type=click.IntRange(min=1), default=None, help="Max output tokens.")
@_project_option
def ask(
    prompt: str,
    *,
    system_text: str,
    attach: Path | None,
    model: str | None,
    max_output: int | None,
    project: Path | None,
) -> None:
    """Send a one-off prompt to the configured model."""
    from codefacts.llm import Attachment, generate

    project_root = _project_root(project)
    cfg = _load_config(project_root)
    attachment = Attachment.from_path(attach) if attach is not None else None
    try:
        completion = generate(
            cfg.llm_config(model=model, max_output_tokens=max_output),
            system_text,
            prompt,
            attachment,
        )
    except CodefactsError as exc:
        _fail(str(exc))
    _echo_completion(completion)


@main.command()
@_project_option
def whoami(*, project: Path | None) -> None:
    """Check the active profile against its endpoint and show rate limits."""
    from codefacts.llm import check_endpoint

    project_root = _project_root(project)
    cfg = _load_config(project_root)
    try:
        llm_cfg = cfg.llm_config()
        status = check_endpoint(llm_cfg)
    except CodefactsError as exc:
        _fail(str(exc))

    click.echo(f"Profile:   {llm_cfg.profile}")
    click.echo(f"API base:  {llm_cfg.api_base}")
    click.echo(f"Model:     {llm_cfg.model}")
    click.echo(f"Lang:      {cfg.lang}")
    click.echo(f"Status:    {status.status_code} {status.reason}".rstrip())
    if status.model_count is not None:
        click.echo(f"Models:    {status.model_count}")
    if status.rate_limits:
        click.echo("Rate limits:")
        for name, value in sorted(status.rate_limits.items()):
            click.echo(f"  {name}: {value}")
    else:
        click.echo("Rate limits: (not reported)")
    if not status.ok:
        _fail(f"endpoint rejected the request ({status.status_code})")


@main.group()
def config() -> None:
    """Inspect or edit configuration files."""


@config.command("show")
@_project_option
def config_show(*, project: Path | None) -> None:
    """Show the effective configuration."""
    project_root = _project_root(project)
    cfg = _load_config(project_root)
    try:
        llm_cfg = cfg.llm_config()
        key_source = cfg.api_key_source()
    except CodefactsError as exc:
        _fail(str(exc))

    click.echo(f"Profile:   {llm_cfg.profile}")
    click.echo(f"API base:  {llm_cfg.api_base}")
    click.echo(f"Model:     {llm_cfg.model}")
    click.echo(f"Lang:      {cfg.lang}")
    click.echo(f"Max out:   {llm_cfg.max_output_tokens}")
    click.echo(f"API key:   {key_source}{'' if llm_cfg.api_key else ' (not set)'}")
    click.echo(f"Tagger:    {' '.join(cfg.tagger_command)}")
    click.echo(f"Window:    {cfg.explain_window}")
    click.echo(f"Global:    {cfg.global_path or '-'}")
    click.echo(f"Project:   {cfg.project_path}")


@config.command("init")
@_project_option
def config_init(*, project: Path | None) -> None:
    """Write template global and project config files if missing."""
    from codefacts.infrastructure.config import init_config_files

    project_root = _project_root(project)
    for path, created in init_config_files(project_root):
        click.echo(f"{'created' if created else 'exists '}: {path}")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.option(
    "--global", "global_scope", is_flag=True, help="Write the global config instead."
)
@click.option("--profile", default=None, help="Profile for short keys such as api_base.")
@_project_option
def config_set(
    key: str,
    value: str,
    *,
    global_scope: bool,
    profile: str | None,
    project: Path | None,
) -> None:
    """Set KEY to VALUE, e.g. ``model gpt-4.1`` or ``profiles.local.api_base URL``."""
    from codefacts.infrastructure.config import (
        global_config_path,
        project_config_path,
        set_config_value,
    )

    if global_scope:
        path = global_config_path()
    else:
        path = project_config_path(_project_root(project))
    try:
        key_path = set_config_value(path, key, value, profile=profile)
    except CodefactsError as exc:
        _fail(str(exc))
    click.echo(f"set {'.'.join(key_path)}")
    click.echo(f"updated {path}")
