"""Command-line interface for vecdex."""

import asyncio
import logging

import click

from vecdex import __version__
from vecdex.config import get_config


def _parse_where(pairs: tuple[str, ...]) -> dict[str, object]:
    """Turn ``key=value`` options into a search filter.

    Values that parse as integers are compared as integers.
    """
    result: dict[str, object] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--where")
        try:
            result[key] = int(value)
        except ValueError:
            result[key] = value
    return result


def _require_store(db_name: str) -> None:
    path = get_config().store_path(db_name)
    if not path.exists():
        raise click.ClickException(f"No store named {db_name!r} at {path}")


async def _load(db_name: str, collection: str):
    from vecdex.index import EmbeddingIndex

    index = EmbeddingIndex()
    try:
        await index.load_index_from_db(collection, db_name=db_name)
    finally:
        await index.db.close()
    return index


@click.group()
@click.version_option(version=__version__, prog_name="vecdex")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """vecdex - embedding index with versioned local persistence."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@cli.command()
def doctor() -> None:
    """Check configuration and installed libraries."""
    config = get_config()

    click.echo(f"vecdex v{__version__}")
    click.echo(f"  Store dir:          {config.store_dir}")
    click.echo(f"  Store dir exists:   {config.store_dir.exists()}")
    click.echo(f"  Default store:      {config.default_db}/{config.default_collection}")
    click.echo(f"  Embedding model:    {config.embedding_model}")
    click.echo(f"  Similarity digits:  {config.similarity_precision}")
    click.echo(f"  Default top-k:      {config.top_k}")

    click.echo("\nEmbeddings:")
    try:
        import sentence_transformers  # noqa: F401

        click.echo("  sentence-transformers: available")
    except ImportError:
        click.echo("  sentence-transformers: NOT available")

    if config.store_dir.exists():
        stores = sorted(p.stem for p in config.store_dir.glob("*.db"))
        click.echo(f"\nStores: {', '.join(stores) if stores else 'none'}")


@cli.command()
@click.argument("db_name")
def collections(db_name: str) -> None:
    """List the collections of a store."""
    from vecdex.db import Database

    _require_store(db_name)

    async def run():
        db = Database()
        try:
            await db.initialize_db(db_name)
            return db.version, sorted(db.collection_names())
        finally:
            await db.close()

    version, names = asyncio.run(run())
    click.echo(f"{db_name} (version {version})")
    for name in names:
        click.echo(f"  {name}")


@cli.command()
@click.argument("db_name")
@click.argument("collection")
def show(db_name: str, collection: str) -> None:
    """Print every record of a collection."""
    _require_store(db_name)
    index = asyncio.run(_load(db_name, collection))
    index.print_index()


@cli.command()
@click.argument("db_name")
@click.argument("collection")
@click.argument("query")
@click.option("-k", "--top-k", type=int, default=None, help="Number of results.")
@click.option("--where", multiple=True, help="Filter as key=value. Repeatable.")
def search(db_name: str, collection: str, query: str, top_k: int | None, where: tuple[str, ...]) -> None:
    """Embed QUERY and rank the records of a collection against it."""
    from vecdex.embeddings import get_embedding

    _require_store(db_name)
    filter = _parse_where(where)
    index = asyncio.run(_load(db_name, collection))
    query_embedding = get_embedding(query)
    for result in index.search(query_embedding, top_k=top_k, filter=filter):
        fields = {k: v for k, v in result.record.items() if k != "embedding"}
        click.echo(f"{result.similarity:.4f}  {fields}")


if __name__ == "__main__":
    cli()
