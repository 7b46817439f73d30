from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, NoReturn

import typer

from tufguard.config import AppConfig, load_config
from tufguard.errors import TufGuardError
from tufguard.repository import VerifiedRepository, create_repository
from tufguard.schemas import FetchResult

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = typer.Typer(help="TUF-verified repository metadata CLI")


def _config_option() -> Any:
    return typer.Option(
        Path("tufguard.yaml"),
        "--config",
        help="Config file path (JSON or YAML).",
        exists=True,
        dir_okay=False,
        readable=True,
    )


@app.command("show-config")
def show_config(config_path: Path = _config_option()) -> None:
    """Print configured repositories and whether TUF verifies them."""
    config = _load_config_or_exit(config_path)
    typer.echo(f"vendor_dir={config.vendor_dir} cache_dir={config.cache.directory}")
    for repo in config.repositories:
        trust = repo.tuf.url if repo.tuf is not None else "unverified"
        typer.echo(
            f"{repo.name} url={repo.url} tuf={trust} "
            f"allow_ssl_downgrade={str(repo.allow_ssl_downgrade).lower()}"
        )


@app.command()
def fetch(
    name: str = typer.Argument(..., help="Repository name from the config."),
    filename: str = typer.Argument(..., help="Absolute URL or /-rooted path to fetch."),
    config_path: Path = _config_option(),
    cache_key: str | None = typer.Option(None, "--cache-key", help="Cache entry key."),
    sha256: str | None = typer.Option(None, "--sha256", help="Expected sha256 of the file."),
    store_last_modified: bool = typer.Option(
        False,
        "--store-last-modified",
        help="Embed the Last-Modified header into the cached payload.",
    ),
) -> None:
    """Fetch one metadata file through the blocking secure fetch path."""
    repo = _build_repository(config_path, name)
    try:
        result = repo.fetch_file(
            filename,
            cache_key=cache_key,
            sha256=sha256,
            store_last_modified=store_last_modified,
        )
    except TufGuardError as exc:
        _fail(exc)
    _echo_result(result)


@app.command("fetch-many")
def fetch_many(
    name: str = typer.Argument(..., help="Repository name from the config."),
    filenames: list[str] = typer.Argument(..., help="URLs or /-rooted paths to fetch."),
    config_path: Path = _config_option(),
) -> None:
    """Fetch several metadata files concurrently through the asyncio path."""
    repo = _build_repository(config_path, name)
    try:
        results = asyncio.run(_fetch_all(repo, filenames))
    except TufGuardError as exc:
        _fail(exc)
    for result in results:
        _echo_result(result)
    if repo.degraded:
        typer.echo(f"degraded: {repo.session.degraded_message}", err=True)


@app.command()
def root(
    name: str = typer.Argument(..., help="Repository name from the config."),
    config_path: Path = _config_option(),
) -> None:
    """Refresh trust metadata and load the repository's packages.json."""
    repo = _build_repository(config_path, name)
    try:
        result = repo.load_root_server_file()
    except TufGuardError as exc:
        _fail(exc)
    _echo_result(result)


async def _fetch_all(repo: VerifiedRepository, filenames: list[str]) -> list[FetchResult]:
    try:
        return list(
            await asyncio.gather(
                *(repo.async_fetch_file(filename, cache_key=filename) for filename in filenames)
            )
        )
    finally:
        transport = repo.async_fetcher.transport if repo.async_fetcher is not None else None
        aclose = getattr(transport, "aclose", None)
        if aclose is not None:
            await aclose()


def _load_config_or_exit(config_path: Path) -> AppConfig:
    try:
        return load_config(config_path)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _build_repository(config_path: Path, name: str) -> VerifiedRepository:
    config = _load_config_or_exit(config_path)
    try:
        repo_config = config.get_repository(name)
    except KeyError as exc:
        typer.echo(f"unknown repository: {name}", err=True)
        raise typer.Exit(code=1) from exc
    return create_repository(repo_config, config)


def _echo_result(result: FetchResult) -> None:
    typer.echo(f"{result.outcome.value} {result.filename} bytes={len(result.body)}")
    if result.data is not None:
        typer.echo(json.dumps(result.data, ensure_ascii=False, indent=2, sort_keys=True))


def _fail(exc: TufGuardError) -> NoReturn:
    logging.debug("fetch failed", exc_info=exc)
    typer.echo(f"error: {exc.message}", err=True)
    raise typer.Exit(code=1) from exc
